# snapshots.py
import asyncio
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from playwright.async_api import Frame, Locator, Page

from .constants import FUSION_COMPUTED_STYLES, INTERACTIVE_ROLES
from .errors import BrowserError
from .models import (
    AXNodeInfo,
    DOMRect,
    EnhancedDOMTreeNode,
    EnhancedSnapshot,
    LayoutInfo,
    RefEntry,
    RefMap,
    SnapshotOptions,
)

logger = logging.getLogger(__name__)

_REF_PATTERN = re.compile(r'^e\d+$')

# "  - role "name" [attr] [attr=value]: text"
_NODE_LINE = re.compile(r'^(?P<indent>\s*)- (?P<role>[A-Za-z][\w-]*)(?:\s+"(?P<name>(?:[^"\\]|\\.)*)")?(?P<suffix>.*)$')
_STATE_ATTR = re.compile(r'\[([a-z][\w-]*)(?:=([^\]]+))?\]', re.I)

NODE_TYPES = {
    1: 'element',
    3: 'text',
    8: 'comment',
    9: 'document',
    10: 'documentType',
    11: 'documentFragment',
}


# ---------------------------------------------------------------------------
# Refs
# ---------------------------------------------------------------------------

def parse_ref(arg: str) -> Optional[str]:
    """Return the ref id if ``arg`` uses ref syntax (``@e1``, ``ref=e1``, ``e1``)."""
    if arg.startswith('@'):
        candidate = arg[1:]
    elif arg.startswith('ref='):
        candidate = arg[4:]
    else:
        candidate = arg
    return candidate if _REF_PATTERN.match(candidate) else None


def build_selector(role: str, name: Optional[str] = None) -> str:
    if name:
        escaped = name.replace('"', '\\"')
        return f'role={role}[name="{escaped}"]'
    return f'role={role}'


def locator_for_ref(scope, entry: RefEntry) -> Locator:
    """Re-locate a ref entry live inside a page or frame."""
    if entry.name:
        locator = scope.get_by_role(entry.role, name=entry.name, exact=True)
    else:
        locator = scope.get_by_role(entry.role)
    if entry.nth is not None:
        locator = locator.nth(entry.nth)
    return locator


# ---------------------------------------------------------------------------
# Accessibility snapshot
# ---------------------------------------------------------------------------

def _render_suffix(suffix: str) -> str:
    parts = []
    for match in _STATE_ATTR.finditer(suffix):
        attr = match.group(1).lower()
        if attr in ('ref', 'nth'):
            continue
        parts.append(match.group(0))
    rest = _STATE_ATTR.sub('', suffix).strip()
    # A bare trailing ":" only announces children
    if rest.startswith(':'):
        text = rest[1:].strip()
        if text:
            parts.append(f': {text}')
    rendered = ''
    for part in parts:
        rendered += part if part.startswith(':') else f' {part}'
    return rendered


def process_aria_tree(aria_tree: str, options: Optional[SnapshotOptions] = None) -> EnhancedSnapshot:
    """Annotate an aria snapshot with refs and apply the snapshot filters.

    Every interactive node gets the next ``eN`` id.  Nodes sharing a
    ``(role, name)`` pair are told apart by ``nth``; the index is dropped again
    for pairs that turn out to be unique, and the rendered text only shows
    ``[nth=N]`` from the second occurrence on.
    """
    options = options or SnapshotOptions()
    refs: RefMap = {}
    lines: List[Tuple[str, Optional[str]]] = []
    seen: Dict[Tuple[str, str], List[str]] = {}
    counter = 0

    for raw in aria_tree.splitlines():
        match = _NODE_LINE.match(raw)
        if not match:
            continue

        indent = match.group('indent')
        role = match.group('role').lower()
        name = match.group('name')
        if name is not None:
            name = name.replace('\\"', '"')
        depth = len(indent) // 2

        if options.depth is not None and depth > options.depth:
            continue
        if options.interactive and role not in INTERACTIVE_ROLES:
            continue

        line = f'{indent}- {match.group("role")}'
        if name:
            line += ' "{}"'.format(name.replace('"', '\\"'))

        ref = None
        if role in INTERACTIVE_ROLES:
            counter += 1
            ref = f'e{counter}'
            key = (role, name or '')
            occurrences = seen.setdefault(key, [])
            refs[ref] = RefEntry(selector=build_selector(role, name), role=role, name=name or None, nth=len(occurrences))
            occurrences.append(ref)
            line += f' [ref={ref}]'

        line += _render_suffix(match.group('suffix'))
        lines.append((line, ref))

    for ref_ids in seen.values():
        if len(ref_ids) == 1:
            refs[ref_ids[0]].nth = None

    rendered = []
    for line, ref in lines:
        entry = refs.get(ref) if ref else None
        if entry is not None and entry.nth:
            line = line.replace(f'[ref={ref}]', f'[ref={ref}] [nth={entry.nth}]', 1)
        rendered.append(line)

    if not rendered:
        return EnhancedSnapshot(tree='(no interactive elements)', refs=refs)

    if options.compact:
        tree = ' | '.join(line.strip()[2:] for line in rendered)
    else:
        tree = '\n'.join(rendered)
    return EnhancedSnapshot(tree=tree, refs=refs)


async def get_enhanced_snapshot(frame: Frame, options: Optional[SnapshotOptions] = None) -> EnhancedSnapshot:
    options = options or SnapshotOptions()
    locator = frame.locator(options.selector or ':root')
    aria_tree = await locator.aria_snapshot()
    if not aria_tree or not aria_tree.strip():
        return EnhancedSnapshot(tree='(empty)', refs={})
    snapshot = process_aria_tree(aria_tree, options)
    logger.debug(f"Snapshot captured: {len(snapshot.refs)} refs")
    return snapshot


# ---------------------------------------------------------------------------
# Multi-source DOM fusion
# ---------------------------------------------------------------------------

def _attribute_map(flat: Optional[List[str]]) -> Dict[str, str]:
    flat = flat or []
    return {flat[i]: flat[i + 1] for i in range(0, len(flat) - 1, 2)}


def _inline_style(style: str) -> Dict[str, str]:
    declarations = {}
    for declaration in style.split(';'):
        if ':' not in declaration:
            continue
        prop, value = declaration.split(':', 1)
        declarations[prop.strip().lower()] = value.strip().lower()
    return declarations


def _ax_lookup(ax_nodes: List[Dict[str, Any]]) -> Dict[int, AXNodeInfo]:
    lookup = {}
    for node in ax_nodes:
        backend_id = node.get('backendDOMNodeId')
        if not backend_id:
            continue
        properties = {}
        for prop in node.get('properties') or []:
            value = prop.get('value') or {}
            properties[prop['name']] = value.get('value')
        lookup[backend_id] = AXNodeInfo(
            node_id=str(node.get('nodeId')),
            role=(node.get('role') or {}).get('value') or 'none',
            name=(node.get('name') or {}).get('value'),
            description=(node.get('description') or {}).get('value'),
            value=(node.get('value') or {}).get('value'),
            properties=properties,
        )
    return lookup


def _layout_lookup(layout_snapshot: Dict[str, Any]) -> Dict[int, LayoutInfo]:
    strings = layout_snapshot.get('strings') or []
    lookup = {}
    for document in layout_snapshot.get('documents') or []:
        backend_ids = (document.get('nodes') or {}).get('backendNodeId') or []
        layout = document.get('layout') or {}
        bounds = layout.get('bounds') or []
        styles = layout.get('styles') or []
        paint_orders = layout.get('paintOrders') or []
        for i, node_index in enumerate(layout.get('nodeIndex') or []):
            if node_index >= len(backend_ids):
                continue
            info = LayoutInfo()
            if i < len(bounds) and len(bounds[i]) >= 4:
                x, y, width, height = bounds[i][:4]
                info.bounds = DOMRect(x, y, width, height)
            if i < len(styles):
                for prop, string_index in zip(FUSION_COMPUTED_STYLES, styles[i]):
                    if 0 <= string_index < len(strings):
                        info.styles[prop] = strings[string_index]
            if i < len(paint_orders):
                info.paint_order = paint_orders[i]
            lookup[backend_ids[node_index]] = info
    return lookup


def is_node_visible(layout: Optional[LayoutInfo], attributes: Dict[str, str]) -> bool:
    inline = _inline_style(attributes.get('style', ''))
    if inline.get('display') == 'none' or inline.get('visibility') == 'hidden':
        return False
    if layout is None:
        return True
    if layout.styles.get('display') == 'none' or layout.styles.get('visibility') == 'hidden':
        return False
    if layout.bounds is not None and layout.bounds.area == 0:
        return False
    return True


def fuse_dom_tree(dom_root: Dict[str, Any], ax_nodes: List[Dict[str, Any]],
                  layout_snapshot: Dict[str, Any],
                  options: Optional[SnapshotOptions] = None) -> EnhancedDOMTreeNode:
    """Join the DOM, accessibility and layout sources on ``backendNodeId``.

    Hidden nodes are pruned together with their subtree unless
    ``include_hidden`` is set, in which case they stay with ``is_visible`` False.
    """
    options = options or SnapshotOptions()
    ax_by_backend = _ax_lookup(ax_nodes)
    layout_by_backend = _layout_lookup(layout_snapshot)

    def build(dom_node: Dict[str, Any], depth: int) -> Optional[EnhancedDOMTreeNode]:
        if options.depth is not None and depth > options.depth:
            return None

        backend_id = dom_node.get('backendNodeId', 0)
        attributes = _attribute_map(dom_node.get('attributes'))
        layout = layout_by_backend.get(backend_id)
        visible = is_node_visible(layout, attributes)
        if not visible and not options.include_hidden:
            return None

        node = EnhancedDOMTreeNode(
            node_id=dom_node.get('nodeId', 0),
            backend_node_id=backend_id,
            node_type=NODE_TYPES.get(dom_node.get('nodeType'), 'element'),
            node_name=dom_node.get('nodeName', ''),
            node_value=dom_node.get('nodeValue') or None,
            attributes=attributes,
            is_visible=visible,
            absolute_position=layout.bounds if layout else None,
            paint_order=layout.paint_order if layout else None,
            ax_node=ax_by_backend.get(backend_id),
        )

        children = list(dom_node.get('shadowRoots') or []) + list(dom_node.get('children') or [])
        if dom_node.get('contentDocument'):
            children.append(dom_node['contentDocument'])
        for child in children:
            built = build(child, depth + 1)
            if built is not None:
                node.children.append(built)
        return node

    root = build(dom_root, 0)
    if root is None:
        return EnhancedDOMTreeNode(node_id=0, backend_node_id=0, node_type='document', node_name='#document')
    return root


async def get_full_dom_tree(page: Page, options: Optional[SnapshotOptions] = None) -> EnhancedDOMTreeNode:
    browser = page.context.browser
    if browser is not None and browser.browser_type.name != 'chromium':
        raise BrowserError('CDP sessions are only available for Chromium')

    client = await page.context.new_cdp_session(page)
    try:
        dom, ax_tree, layout = await asyncio.gather(
            client.send('DOM.getDocument', {'depth': -1, 'pierce': True}),
            client.send('Accessibility.getFullAXTree'),
            client.send('DOMSnapshot.captureSnapshot', {
                'computedStyles': FUSION_COMPUTED_STYLES,
                'includePaintOrder': True,
                'includeDOMRects': True,
            }),
        )
    finally:
        try:
            await client.detach()
        except Exception as e:
            logger.debug(f"CDP session detach failed: {e}")

    return fuse_dom_tree(dom['root'], ax_tree.get('nodes', []), layout, options)


def find_node_by_ref(tree: EnhancedDOMTreeNode, ref: str, refs: RefMap) -> Optional[EnhancedDOMTreeNode]:
    """Find the fused node a ref points at.

    Nodes are matched on accessibility role and name; a ref with ``nth`` set
    picks that occurrence in document order.
    """
    entry = refs.get(ref)
    if entry is None:
        return None
    remaining = entry.nth or 0
    for node in tree.iter_nodes():
        if node.ax_node is None or node.ax_node.role != entry.role:
            continue
        if entry.name and node.ax_node.name != entry.name:
            continue
        if remaining == 0:
            return node
        remaining -= 1
    return None
