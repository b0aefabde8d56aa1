from abc import ABC, abstractmethod

from app.domain.entities.booking import AdvisorySession, Company


class CatalogPort(ABC):
    @abstractmethod
    def get_session(self, session_id: str) -> AdvisorySession | None:
        """Session template (title, duration, preparation instructions)."""
        raise NotImplementedError

    @abstractmethod
    def get_company(self, company_id: str) -> Company | None:
        raise NotImplementedError
