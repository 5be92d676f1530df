"""Abstract base class for receipt SMS parsers."""

from abc import ABC, abstractmethod

from bkash_verifier.schemas.receipt import ParsedSms


class BaseSmsParser(ABC):
    """Base interface that every provider-specific SMS parser must implement.

    A parser is a pure function over text:
    1. No I/O, no database, no clock.
    2. Returns a fully-populated ``ParsedSms`` on success.
    3. Raises ``SmsParseError(field, message)`` on the first field it
       cannot extract.
    """

    provider_name: str

    @abstractmethod
    def parse(self, raw_text: str) -> ParsedSms:
        """Parse one SMS body into receipt fields.

        Args:
            raw_text: The SMS body exactly as relayed from the phone.

        Returns:
            A ``ParsedSms`` ready for ingestion.
        """
        pass
