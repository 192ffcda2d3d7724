# models.py
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any


@dataclass
class RefEntry:
    selector: str
    role: str
    name: Optional[str] = None
    nth: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'selector': self.selector, 'role': self.role}
        if self.name is not None:
            data['name'] = self.name
        if self.nth is not None:
            data['nth'] = self.nth
        return data


# ref id (e.g. "e17") -> entry, in discovery order
RefMap = Dict[str, RefEntry]


@dataclass
class SnapshotOptions:
    selector: Optional[str] = None
    interactive: bool = False
    depth: Optional[int] = None
    include_hidden: bool = False
    compact: bool = False


@dataclass
class EnhancedSnapshot:
    tree: str
    refs: RefMap = field(default_factory=dict)

    def refs_to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {ref: entry.to_dict() for ref, entry in self.refs.items()}


@dataclass
class DOMRect:
    x: float
    y: float
    width: float
    height: float

    @property
    def area(self) -> float:
        return self.width * self.height

    def to_dict(self) -> Dict[str, float]:
        return {'x': self.x, 'y': self.y, 'width': self.width, 'height': self.height}


@dataclass
class AXNodeInfo:
    node_id: str
    role: str
    name: Optional[str] = None
    description: Optional[str] = None
    value: Optional[Any] = None
    properties: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'nodeId': self.node_id, 'role': self.role}
        for key, value in (('name', self.name), ('description', self.description), ('value', self.value)):
            if value is not None:
                data[key] = value
        data.update(self.properties)
        return data


@dataclass
class LayoutInfo:
    bounds: Optional[DOMRect] = None
    styles: Dict[str, str] = field(default_factory=dict)
    paint_order: Optional[int] = None


@dataclass
class EnhancedDOMTreeNode:
    """DOM node fused with its accessibility and layout counterparts."""
    node_id: int
    backend_node_id: int
    node_type: str
    node_name: str
    node_value: Optional[str] = None
    attributes: Dict[str, str] = field(default_factory=dict)
    is_visible: bool = True
    absolute_position: Optional[DOMRect] = None
    paint_order: Optional[int] = None
    ax_node: Optional[AXNodeInfo] = None
    children: List['EnhancedDOMTreeNode'] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'nodeId': self.node_id,
            'backendNodeId': self.backend_node_id,
            'nodeType': self.node_type,
            'nodeName': self.node_name,
            'attributes': dict(self.attributes),
            'isVisible': self.is_visible,
        }
        if self.node_value:
            data['nodeValue'] = self.node_value
        if self.absolute_position is not None:
            data['absolutePosition'] = self.absolute_position.to_dict()
        if self.paint_order is not None:
            data['paintOrder'] = self.paint_order
        if self.ax_node is not None:
            data['axNode'] = self.ax_node.to_dict()
        if self.children:
            data['children'] = [child.to_dict() for child in self.children]
        return data

    def iter_nodes(self):
        yield self
        for child in self.children:
            yield from child.iter_nodes()
