# agent/registration/graph.py
from __future__ import annotations

from langgraph.graph import END, StateGraph

from agent.entity_extractor import EntityExtractor
from agent.registration.nodes.fallback_node import make_fallback_node
from agent.registration.nodes.finalize_node import make_finalize_node
from agent.registration.nodes.ingest_node import make_ingest_node
from agent.registration.nodes.interpret_node import make_interpret_node
from agent.registration.nodes.step_input_node import make_step_input_node
from agent.registration.rules import DIRECT_STEPS
from agent.registration.state import RegistrationState
from shared.config import RegistrationSettings
from store.base import UserStore


# -------------------------------
# Routing logic
# -------------------------------

def route_after_ingest(state: RegistrationState) -> str:
    """
    - rigid variant                          -> step_input
    - conversational, a field asked directly -> step_input
    - conversational otherwise               -> interpret
    """
    if state.get("mode") == "step" or state["flow"].step in DIRECT_STEPS:
        return "step_input"
    return "interpret"


# -------------------------------
# Build graph
# -------------------------------

def build_registration_graph(
    extractor: EntityExtractor,
    users: UserStore,
    settings: RegistrationSettings,
):
    """
    One inbound message of an unregistered number:

      ingest
        -> step_input                  (deterministic parse of the asked field)
        -> interpret -> fallback       (inference turn, then attempt thresholds)
      -> finalize                      (completion check, user creation, reply into history)
    """
    builder = StateGraph(RegistrationState)

    builder.add_node("ingest", make_ingest_node(settings.flow_ttl_hours))
    builder.add_node("step_input", make_step_input_node(settings))
    builder.add_node("interpret", make_interpret_node(extractor))
    builder.add_node("fallback", make_fallback_node(settings))
    builder.add_node("finalize", make_finalize_node(users))

    builder.set_entry_point("ingest")

    builder.add_conditional_edges(
        "ingest",
        route_after_ingest,
        {
            "step_input": "step_input",
            "interpret": "interpret",
        },
    )

    builder.add_edge("interpret", "fallback")
    builder.add_edge("fallback", "finalize")
    builder.add_edge("step_input", "finalize")
    builder.add_edge("finalize", END)

    return builder
