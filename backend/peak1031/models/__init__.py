from .base import Base
from .user import User
from .refresh_token import RefreshToken
from .exchange import Exchange
from .participant import ExchangeParticipant
from .stage_history import ExchangeStageHistory
from .task import Task
from .template import DocumentTemplate
from .document import Document
from .message import Message, MessageReceipt
from .notification import Notification
from .invitation import ExchangeInvitation
from .audit_log import AuditLog
from .audit_social import AuditAssignment, AuditComment, AuditLike

__all__ = [
    "Base",
    "User",
    "RefreshToken",
    "Exchange",
    "ExchangeParticipant",
    "ExchangeStageHistory",
    "Task",
    "DocumentTemplate",
    "Document",
    "Message",
    "MessageReceipt",
    "Notification",
    "ExchangeInvitation",
    "AuditLog",
    "AuditComment",
    "AuditLike",
    "AuditAssignment",
]
