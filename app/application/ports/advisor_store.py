from abc import ABC, abstractmethod

from app.domain.entities.advisor import Advisor, CredentialBundle


class AdvisorStorePort(ABC):
    @abstractmethod
    def get_advisor(self, advisor_id: str) -> Advisor | None:
        """Advisor record with its credential bundle decoded, or None if unknown."""
        raise NotImplementedError

    @abstractmethod
    def save_credentials(
        self,
        advisor_id: str,
        bundle: CredentialBundle,
        account_email: str | None = None,
    ) -> None:
        """
        Replace the advisor's credential bundle wholesale.
        Raises NotFoundError for an unknown advisor and StorageError on backend failure.
        """
        raise NotImplementedError

    @abstractmethod
    def clear_credentials(self, advisor_id: str) -> None:
        raise NotImplementedError
