# agent/main.py
"""
Wiring and the single entry point for one inbound message.

Services are built from the current Settings; the inference client is injected, so
a configuration change means building a new Services, never mutating a client.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from langfuse import observe

from adapters.whatsapp.evolution_adapter import EvolutionAdapter
from agent.entity_extractor import EntityExtractor
from agent.intent_classifier import IntentClassifier
from agent.llm_client import (
    EmbeddingClient,
    TextInferenceClient,
    build_embedding_client,
    build_inference_client,
    build_speech_client,
)
from agent.pipeline import ContactPipeline, PendingUpdates
from agent.registration.service import RegistrationService, flow_key
from agent.transcription import AudioTranscriber
from contacts import formatting
from contacts.embeddings import EmbeddingJobs
from contacts.merge import MergeEngine
from contacts.network import NetworkGraphBuilder
from contacts.resolver import ContactResolver
from dedupe.cache import IdempotencyCache
from models.decision import DecisionOutcome, TargetAgent
from models.input import InboundMessage
from observability.obs import instrument_io
from observability.telemetry import set_common_trace_attrs
from route.route_input import route_input
from shared import phone as phone_util
from shared.config import Settings
from shared.keyed_lock import KeyedLock, phone_locks
from store.factory import Stores, build_stores

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    stores: Stores
    registration: RegistrationService
    pipeline: ContactPipeline
    embedding_jobs: EmbeddingJobs
    network: NetworkGraphBuilder
    dedupe: IdempotencyCache
    locks: KeyedLock
    audio: AudioTranscriber


def build_services(
    settings: Settings,
    *,
    stores: Optional[Stores] = None,
    inference: Optional[TextInferenceClient] = None,
    embeddings: Optional[EmbeddingClient] = None,
    embedding_jobs: Optional[EmbeddingJobs] = None,
    dedupe: Optional[IdempotencyCache] = None,
    locks: Optional[KeyedLock] = None,
    audio: Optional[AudioTranscriber] = None,
) -> Services:
    phone_util.configure(settings.default_country_code)
    stores = stores or build_stores(settings)
    inference = inference if inference is not None else build_inference_client(settings)
    embeddings = embeddings if embeddings is not None else build_embedding_client(settings)
    if inference is None:
        logger.warning("OPENAI_API_KEY not set: intents default to 'other' and extraction is disabled")

    extractor = EntityExtractor(inference)
    classifier = IntentClassifier(inference, min_length=settings.intent_min_length)
    jobs = embedding_jobs or EmbeddingJobs(stores.contacts, embeddings)
    resolver = ContactResolver(stores.contacts, embeddings, settings.thresholds)
    merger = MergeEngine(stores.contacts, jobs)

    return Services(
        settings=settings,
        stores=stores,
        registration=RegistrationService(stores.flows, stores.users, extractor, settings.registration),
        pipeline=ContactPipeline(
            classifier, extractor, resolver, merger, stores.contacts,
            PendingUpdates(settings.pending_update_ttl_seconds),
        ),
        embedding_jobs=jobs,
        network=NetworkGraphBuilder(
            stores.contacts, stores.users,
            depth=settings.graph_depth, fanout=settings.graph_linked_fanout,
        ),
        dedupe=dedupe or IdempotencyCache(),
        locks=locks or phone_locks,
        audio=audio or AudioTranscriber(EvolutionAdapter.from_settings(settings), build_speech_client(settings)),
    )


@observe(name="inbound-message")  # root trace for this message
@instrument_io(
    name="handle_inbound",
    meta={"operation": "handle_inbound", "schema": "InboundMessage.v1"},
    input_fn=lambda services, msg: {"message_id": msg.message_id, "text": msg.text, "audio": msg.is_audio},
    output_fn=lambda reply: {"replied": reply is not None},
    redact=True,
)
def handle_inbound(services: Services, msg: InboundMessage) -> Optional[str]:
    """
    Routes one message and returns the reply to send, or None when the message is
    ignored. Blocking: run it off the event loop. Store errors propagate.
    """
    decision = route_input(msg, services.stores.users, services.dedupe)
    if decision.outcome == DecisionOutcome.IGNORE:
        logger.info("message %s ignored: %s", msg.message_id, decision.reason)
        return None

    route = decision.target_agent.value if decision.target_agent else None
    with set_common_trace_attrs(
        phone=msg.phone,
        message_id=msg.message_id,
        route=route,
        user_id=decision.user.user_id if decision.user else None,
    ):
        # one message per phone at a time: flow and pending-update state are read-modify-write
        with services.locks.hold(flow_key(msg.phone)):
            text = msg.text
            if msg.is_audio:
                text = services.audio.transcribe(msg.audio_key)
                if not text:
                    return formatting.AUDIO_NOT_UNDERSTOOD

            if decision.target_agent == TargetAgent.REGISTRATION:
                return services.registration.handle_message(msg.phone, text)
            return services.pipeline.handle(decision.user, msg.phone, text)
