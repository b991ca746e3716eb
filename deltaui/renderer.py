"""
Renders components to markup and turns state changes into patches.

The renderer keeps nothing between requests. The "old" tree of an update is
captured with `snapshot()` right before the change runs, from the state the
client sent, and discarded once the patches are computed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from deltaui.component import Component
from deltaui.diff import Patch, diff, full_replacement, optimize_patches
from deltaui.parser import parse
from deltaui.signing import StateSigner
from deltaui.vdom import VNode, fingerprint

logger = logging.getLogger(__name__)


@dataclass
class Snapshot:
    tree: VNode
    fingerprint: str


@dataclass
class RenderedUpdate:
    patches: list[Patch]
    state: dict[str, Any]
    fingerprint: str
    signature: str
    errors: dict[str, list[str]] = field(default_factory=dict)
    query_string: dict[str, Any] = field(default_factory=dict)
    events: list[dict[str, Any]] = field(default_factory=list)
    browser_events: list[dict[str, Any]] = field(default_factory=list)


class Renderer:
    def __init__(self, signer: StateSigner, optimize: bool = True):
        self.signer = signer
        self.optimize = optimize

    def render_tree(self, component: Component) -> tuple[str, VNode]:
        html = component.render()
        return html, parse(html)

    def render_initial(self, component: Component) -> dict[str, Any]:
        html, tree = self.render_tree(component)
        state = component.get_state()
        return {
            "id": component.id,
            "componentClass": component.spec().name,
            "html": html,
            "state": state,
            "fingerprint": fingerprint(tree),
            "signature": self.signer.sign(state, component.id),
            "listeners": dict(component.spec().listeners),
        }

    def snapshot(self, component: Component) -> Snapshot:
        _, tree = self.render_tree(component)
        return Snapshot(tree=tree, fingerprint=fingerprint(tree))

    def render_update(
        self,
        component: Component,
        snapshot: Optional[Snapshot],
        client_fingerprint: Optional[str] = None,
    ) -> RenderedUpdate:
        _, tree = self.render_tree(component)
        new_fingerprint = fingerprint(tree)

        if snapshot is None:
            patches = full_replacement(tree)
        elif client_fingerprint and client_fingerprint != snapshot.fingerprint:
            # The client's tree is not the one we would diff against
            logger.debug(
                "Fingerprint mismatch for %s, sending full replacement", component.id
            )
            patches = full_replacement(tree)
        else:
            patches = diff(snapshot.tree, tree)
            if self.optimize:
                patches = optimize_patches(patches)

        state = component.get_state()
        events, browser_events = component.take_events()
        return RenderedUpdate(
            patches=patches,
            state=state,
            fingerprint=new_fingerprint,
            signature=self.signer.sign(state, component.id),
            errors={k: list(v) for k, v in component.errors.items()},
            query_string=component.query_params(),
            events=events,
            browser_events=browser_events,
        )
