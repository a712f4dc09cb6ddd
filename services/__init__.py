# Service layer package
from . import health_store, mindful_service, postgres_health_store  # re-export for convenience

__all__ = [
	"health_store",
	"mindful_service",
	"postgres_health_store",
]
