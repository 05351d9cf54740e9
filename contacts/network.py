# contacts/network.py
"""
Second-degree network view of one user.

  degree 0  the user
  degree 1  contacts the user owns (edge MEDIUM)
  degree 2  contacts of *other users* whose phone matches one of the user's
            contacts ("linked-<id>", edge WEAK, capped per linked user), and
            people mentioned by the user's contacts ("mentioned-<id>", edge WEAK)

Phone matches always go through shared.phone.variants so the 8/9-digit mobile
forms link to each other.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Set

from models.contact import Contact, MentionedConnection
from models.resolution import GraphData, GraphEdge, GraphNode
from models.user import User
from observability.obs import safe_update_current_span_io, span_step
from shared import phone as phone_util
from store.base import ContactStore, UserStore

logger = logging.getLogger(__name__)

MENTION_TAG_COLOR = "#9ca3af"


class NetworkGraphBuilder:
    def __init__(self, contacts: ContactStore, users: UserStore, *, depth: int = 2, fanout: int = 20):
        self.contacts = contacts
        self.users = users
        self.depth = depth
        self.fanout = fanout

    def build(self, user_id: str) -> Optional[GraphData]:
        """None when the user does not exist."""
        user = self.users.get(user_id)
        if user is None:
            return None

        with span_step("network_graph", kind="node", node="network_graph", depth=self.depth):
            graph = GraphData()
            visited: Set[str] = {user.user_id}
            graph.nodes.append(GraphNode(id=user.user_id, name=user.name, type="user", degree=0, phone=user.phone))

            owned = self.contacts.list_contacts(user_id)
            users_by_id = {u.user_id: u for u in self.users.list_users()}

            for c in owned:
                if c.id in visited:
                    continue
                visited.add(c.id)
                graph.nodes.append(self._contact_node(c, users_by_id))
                graph.edges.append(GraphEdge(source=user.user_id, target=c.id, strength="MEDIUM"))

            if self.depth >= 2:
                phone_index = self._other_users_by_phone(user_id, users_by_id.values())
                for c in owned:
                    self._link_other_user(graph, visited, c, phone_index)
                self._add_mentions(graph, visited, owned)

            safe_update_current_span_io(output={"nodes": len(graph.nodes), "edges": len(graph.edges)})
            return graph

    # --- degree 1 -----------------------------------------------------------

    def _contact_node(self, c: Contact, users_by_id: Dict[str, User]) -> GraphNode:
        tags = [{"id": t.id, "name": t.name, "color": t.color} for t in self.contacts.get_tags(c.tag_ids)]

        shared_by: List[Dict[str, str]] = []
        if c.phone:
            seen_owners: Set[str] = set()
            for other in self.contacts.find_by_phone_other_owners(c.owner_id, phone_util.variants(c.phone)):
                if other.owner_id in seen_owners:
                    continue
                seen_owners.add(other.owner_id)
                owner = users_by_id.get(other.owner_id)
                shared_by.append({"id": other.owner_id, "name": owner.name if owner else ""})

        return GraphNode(
            id=c.id, name=c.name, type="contact", degree=1, tags=tags,
            company=c.company, position=c.position, phone=c.phone, email=c.email,
            context=c.context, location=c.location,
            is_shared=bool(shared_by), shared_by_users=shared_by,
        )

    # --- degree 2 -----------------------------------------------------------

    @staticmethod
    def _other_users_by_phone(user_id: str, users) -> Dict[str, User]:
        index: Dict[str, User] = {}
        for u in users:
            if u.user_id == user_id or not u.phone:
                continue
            for v in phone_util.variants(u.phone):
                index.setdefault(v, u)
        return index

    def _link_other_user(self, graph: GraphData, visited: Set[str], c: Contact, phone_index: Dict[str, User]) -> None:
        if not c.phone:
            return
        linked_user = next((phone_index[v] for v in sorted(phone_util.variants(c.phone)) if v in phone_index), None)
        if linked_user is None:
            return

        logger.info("contact %s is registered user %s; linking their contacts", c.id, linked_user.user_id)
        for lc in self.contacts.list_contacts(linked_user.user_id)[: self.fanout]:
            node_id = f"linked-{lc.id}"
            if node_id in visited:
                continue
            visited.add(node_id)
            graph.nodes.append(GraphNode(
                id=node_id, name=lc.name, type="mentioned", degree=2,
                company=lc.company, position=lc.position, location=lc.location,
            ))
            graph.edges.append(GraphEdge(source=c.id, target=node_id, strength="WEAK"))

    def _add_mentions(self, graph: GraphData, visited: Set[str], owned: List[Contact]) -> None:
        if not owned:
            return
        mentions: List[MentionedConnection] = self.contacts.list_mentions(c.id for c in owned)
        for m in mentions:
            node_id = f"mentioned-{m.id}"
            if node_id in visited:
                continue
            visited.add(node_id)
            graph.nodes.append(GraphNode(
                id=node_id, name=m.name, type="mentioned", degree=2,
                description=m.description, phone=m.phone,
                tags=[{"id": t, "name": t, "color": MENTION_TAG_COLOR} for t in m.tags],
            ))
            graph.edges.append(GraphEdge(source=m.contact_id, target=node_id, strength="WEAK"))
