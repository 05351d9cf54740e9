from enum import Enum


class MessageIntent(str, Enum):
    QUERY = "query"                      # look someone up
    CONTACT_INFO = "contact_info"        # data to save
    UPDATE_CONTACT = "update_contact"    # modify an existing record
    REGISTER_INTENT = "register_intent"  # wants to add someone, no data yet
    OTHER = "other"                      # greeting / ack / unrelated

    @classmethod
    def parse(cls, token: str | None) -> "MessageIntent":
        """Unknown or empty tokens fall back to OTHER."""
        t = (token or "").strip().strip("\"'.").lower()
        try:
            return cls(t)
        except ValueError:
            return cls.OTHER
