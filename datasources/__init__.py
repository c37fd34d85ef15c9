"""Data source clients for Craft Architect."""

# Delay heavy imports to avoid circular dependencies
__all__ = ["GarlandClient", "UniversalisClient", "DataSourceError"]

def __getattr__(name):  # pragma: no cover - simple lazy loader
    if name == "GarlandClient":
        from .garland import GarlandClient
        value = GarlandClient
    elif name == "UniversalisClient":
        from .universalis import UniversalisClient
        value = UniversalisClient
    elif name == "DataSourceError":
        from .http import DataSourceError
        value = DataSourceError
    else:
        raise AttributeError(name)
    globals()[name] = value
    return value
