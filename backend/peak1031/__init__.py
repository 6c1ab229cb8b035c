"""Peak 1031 exchange management backend."""
