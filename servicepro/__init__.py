"""ServicePro field-service backend."""
