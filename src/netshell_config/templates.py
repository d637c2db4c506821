"""Inventory loading and template rendering into per-device config snippets.

Templates live in a search directory and are Jinja2 files named
``<template>-<kind>.tmpl``, e.g. ``base-srl.tmpl`` or
``show-interfaces-vr-sros.tmpl``.  Node templates see ``name``, ``kind``,
``address`` and every node variable.  Link templates (``link-<kind>.tmpl``)
are rendered once per endpoint and also see ``interface``, the link's
variables and ``far``, the other end of the link.  An undefined variable is
a render error.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import yaml
from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError, TemplateNotFound
from typeguard import typechecked

from .exceptions import RenderError
from .types import ConfigSnippet, Endpoint, Inventory, Link, Node

logger = logging.getLogger("netshell_config.templates")

DEFAULT_TEMPLATES = ("base",)
LINK_TEMPLATE = "link"
TEMPLATE_SUFFIX = ".tmpl"


def _parse_endpoint(value: str, nodes: Dict[str, Node]) -> Endpoint:
    name, sep, interface = str(value).partition(":")
    if not sep or not interface:
        raise ValueError(f"link endpoint {value!r} is not <node>:<interface>")
    if name not in nodes:
        raise ValueError(f"link endpoint {value!r} refers to unknown node {name!r}")
    return Endpoint(node=nodes[name], interface=interface)


def load_inventory(path: Union[str, Path]) -> Inventory:
    """Read nodes and links from a YAML inventory.

    Expected layout::

        name: lab1
        nodes:
          leaf1:
            kind: srl
            address: 172.20.20.2
            port: 22
            labels: {config.transport: ssh}
            vars: {asn: 65001}
        links:
          - endpoints: ["leaf1:e1-1", "pe1:1/1/1"]
            vars: {subnet: 10.0.0.0/31}

    Raises:
        OSError: The file cannot be read.
        yaml.YAMLError: The file is not valid YAML.
        ValueError: A node has no kind, or a link is malformed.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    lab = data.get("name", "")
    nodes: Dict[str, Node] = {}
    for name, spec in (data.get("nodes") or {}).items():
        spec = spec or {}
        if "kind" not in spec:
            raise ValueError(f"node {name!r} has no kind")
        nodes[name] = Node(
            short_name=name,
            long_name=f"{lab}-{name}" if lab else name,
            address=str(spec.get("address", name)),
            kind=spec["kind"],
            labels={str(k): str(v) for k, v in (spec.get("labels") or {}).items()},
            variables=dict(spec.get("vars") or {}),
            port=int(spec["port"]) if "port" in spec else None,
        )

    links = []
    for i, spec in enumerate(data.get("links") or []):
        endpoints = spec.get("endpoints") or []
        if len(endpoints) != 2:
            raise ValueError(f"link {i} needs exactly two endpoints, got {len(endpoints)}")
        links.append(Link(
            a=_parse_endpoint(endpoints[0], nodes),
            b=_parse_endpoint(endpoints[1], nodes),
            variables=dict(spec.get("vars") or {}),
        ))

    logger.debug("[RENDER] Loaded %d nodes and %d links from %s", len(nodes), len(links), path)
    return Inventory(name=lab, nodes=list(nodes.values()), links=links)


@typechecked
class TemplateRenderer:
    """Renders the selected templates for each node kind, and links."""

    def __init__(
        self,
        search_path: Union[str, Path],
        templates: Optional[Sequence[str]] = None,
    ) -> None:
        self.search_path = Path(search_path)
        self.templates: Tuple[str, ...] = tuple(templates) if templates else DEFAULT_TEMPLATES
        self.env = Environment(
            loader=FileSystemLoader(str(self.search_path)),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
        )

    def template_file(self, template: str, kind: str) -> Path:
        return self.search_path / f"{template}-{kind}{TEMPLATE_SUFFIX}"

    def _render(self, node: Node, template: str, snippet_name: str, context: Dict[str, Any]) -> ConfigSnippet:
        filename = f"{template}-{node.kind}{TEMPLATE_SUFFIX}"
        try:
            text = self.env.get_template(filename).render(**context)
        except TemplateNotFound as e:
            raise RenderError(
                f"{node.short_name}: template {template!r} not found for kind "
                f"{node.kind} ({self.search_path / filename})",
                node=node.short_name, template=template,
            ) from e
        except TemplateError as e:
            raise RenderError(
                f"{node.short_name}: cannot render {filename}: {e}",
                node=node.short_name, template=template,
            ) from e

        snippet = ConfigSnippet(
            target_node=node,
            template_name=snippet_name,
            lines=tuple(text.splitlines()),
        )
        logger.debug("[RENDER] %s: %d lines", snippet, len(snippet.lines))
        return snippet

    @staticmethod
    def _node_context(node: Node) -> Dict[str, Any]:
        context = dict(node.variables)
        context.update(name=node.short_name, kind=node.kind, address=node.address)
        return context

    def render_node(self, node: Node) -> List[ConfigSnippet]:
        """Render every selected template for *node*.

        Raises:
            RenderError: A template is missing or fails to render.
        """
        context = self._node_context(node)
        return [self._render(node, template, template, context) for template in self.templates]

    def render_link(self, link: Link) -> List[ConfigSnippet]:
        """Render the link template for both ends of *link*.

        Each end gets a snippet named ``link-<far node>`` targeting its own
        node.

        Raises:
            RenderError: The template is missing or fails to render for
                either end.
        """
        snippets = []
        for local, far in ((link.a, link.b), (link.b, link.a)):
            context = self._node_context(local.node)
            context.update(link.variables)
            context.update(
                interface=local.interface,
                far={
                    "name": far.node.short_name,
                    "kind": far.node.kind,
                    "address": far.node.address,
                    "interface": far.interface,
                },
            )
            snippets.append(self._render(
                local.node, LINK_TEMPLATE, f"{LINK_TEMPLATE}-{far.node.short_name}", context,
            ))
        return snippets
