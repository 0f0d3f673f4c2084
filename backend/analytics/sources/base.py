from abc import ABC, abstractmethod


class SymptomLogSource(ABC):
    """Abstract base class for the persistence/API collaborator.

    Implementations return the raw payload shapes of the symptom-log API;
    parsing and caching belong to the orchestrator.
    """

    @abstractmethod
    async def list_symptoms(self) -> list[dict]:
        """Return the symptom catalog as ``SymptomDefinition`` payloads."""
        ...

    @abstractmethod
    async def list_users(self) -> list[dict]:
        """Return user records shaped ``{_id, name, email}``."""
        ...

    @abstractmethod
    async def list_dates(self, user_id: str) -> list[str]:
        """Return the DateKeys with a saved log for one user, most recent first."""
        ...

    @abstractmethod
    async def list_dates_batch(self, user_ids: list[str]) -> dict[str, list[str]]:
        """Return ``{user_id: [date, ...]}`` for every requested user."""
        ...

    @abstractmethod
    async def fetch_logs_batch(self, user_ids: list[str], dates: list[str]) -> dict[str, dict[str, dict]]:
        """Return ``{user_id: {date: {"symptoms": [...]}}}``.

        Every requested (user_id, date) pair must be present, with an empty
        ``symptoms`` list when no log exists.
        """
        ...

    @abstractmethod
    async def fetch_log(self, user_id: str, date: str) -> dict | None:
        """Return ``{"scores": [...]}`` for a saved log, or None when there is none."""
        ...
