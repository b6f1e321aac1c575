from issuerind.core.use_cases.projection import StateProjector
from issuerind.core.use_cases.queries import QueryService

__all__ = ["StateProjector", "QueryService"]
