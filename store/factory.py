# store/factory.py
from dataclasses import dataclass

from shared.config import Settings
from store.base import ContactStore, RegistrationFlowStore, UserStore


@dataclass
class Stores:
    contacts: ContactStore
    users: UserStore
    flows: RegistrationFlowStore


def build_stores(settings: Settings) -> Stores:
    if settings.store_backend == "memory":
        from store.memory import InMemoryContactStore, InMemoryRegistrationFlowStore, InMemoryUserStore
        return Stores(
            contacts=InMemoryContactStore(),
            users=InMemoryUserStore(),
            flows=InMemoryRegistrationFlowStore(),
        )

    from store.contact_store import FirestoreContactStore
    from store.registration_flow_store import FirestoreRegistrationFlowStore
    from store.user_store import FirestoreUserStore
    return Stores(
        contacts=FirestoreContactStore(),
        users=FirestoreUserStore(),
        flows=FirestoreRegistrationFlowStore(),
    )
