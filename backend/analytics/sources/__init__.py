from analytics.sources.base import SymptomLogSource
from analytics.sources.http_source import HttpSymptomLogSource
from analytics.sources.database_source import DatabaseSymptomLogSource


def get_source(kind: str, **kwargs) -> SymptomLogSource:
    sources = {
        "http": HttpSymptomLogSource,
        "database": DatabaseSymptomLogSource,
    }
    cls = sources.get((kind or "").strip().lower())
    if not cls:
        raise ValueError(f"Unknown symptom log source: {kind}")
    return cls(**kwargs)


__all__ = ["SymptomLogSource", "HttpSymptomLogSource", "DatabaseSymptomLogSource", "get_source"]
