# Pydantic models package for mindful minutes responses

from . import mindful_schemas

__all__ = [
	"mindful_schemas",
]
