"""Face tree nodes and their ``face:///`` identifiers.

Internally a node is addressed by a tagged reference (``RootRef``,
``LabelRef``, ``ClusterRef``); the string form only exists at the boundary
with the host browser:

    face:///                    root
    face:///<escaped-label>     all photographs with a label
    face:///_unk_:<cluster-id>  one unlabelled cluster

Labels are percent-encoded with no safe characters, so ``/``, ``:`` and
``%`` inside a label never leak into the identifier and an escaped label
can never start with the literal ``_unk_:`` prefix.  The empty label,
which would otherwise collide with the root, is written as ``=``.
"""
from __future__ import annotations

import dataclasses
import enum
import re
from pathlib import Path
from typing import Union
from urllib.parse import quote, unquote

from facemarks.models import UNKNOWN_LABEL

SCHEME = "face"
ROOT_URI = f"{SCHEME}:///"
CLUSTER_PREFIX = "_unk_:"
# quote() always encodes "=", so no non-empty label escapes to this
EMPTY_LABEL_SEGMENT = "="

ROOT_DISPLAY_NAME = "Faces"
UNKNOWN_DISPLAY_NAME = "Unknown"
CONTENT_TYPE = "facemarks/face"
ICON_NAME = "tag-symbolic"

_CLUSTER_RE = re.compile(r"^(-?\d+)(?: \(\d+\))?$")


class NodeKind(str, enum.Enum):
    ROOT = "root"
    LABEL = "label"
    CLUSTER = "cluster"
    FILE = "file"


@dataclasses.dataclass(frozen=True)
class RootRef:
    pass


@dataclasses.dataclass(frozen=True)
class LabelRef:
    name: str


@dataclasses.dataclass(frozen=True)
class ClusterRef:
    group_id: int


NodeRef = Union[RootRef, LabelRef, ClusterRef]


def escape_label(label: str) -> str:
    if not label:
        return EMPTY_LABEL_SEGMENT
    return quote(label, safe="")


def unescape_label(escaped: str) -> str:
    if escaped == EMPTY_LABEL_SEGMENT:
        return ""
    return unquote(escaped)


def is_face_uri(uri: str) -> bool:
    return uri.startswith(ROOT_URI)


def to_uri(ref: NodeRef) -> str:
    if isinstance(ref, LabelRef):
        return ROOT_URI + escape_label(ref.name)
    if isinstance(ref, ClusterRef):
        return f"{ROOT_URI}{CLUSTER_PREFIX}{ref.group_id}"
    return ROOT_URI


def parse_uri(uri: str) -> NodeRef:
    """Return the reference addressed by *uri*.  Raises ValueError if it isn't one."""
    if not is_face_uri(uri):
        raise ValueError(f"not a face uri: {uri}")
    segment = uri[len(ROOT_URI):]
    if not segment:
        return RootRef()
    if segment.startswith(CLUSTER_PREFIX):
        match = _CLUSTER_RE.match(unquote(segment[len(CLUSTER_PREFIX):]))
        if match is None:
            raise ValueError(f"malformed cluster uri: {uri}")
        return ClusterRef(int(match.group(1)))
    return LabelRef(unescape_label(segment))


@dataclasses.dataclass(frozen=True)
class TreeNode:
    """A virtual directory in the face tree."""

    kind: NodeKind
    ref: NodeRef
    display_name: str
    internal_name: str
    count: int | None = None

    @property
    def uri(self) -> str:
        return to_uri(self.ref)

    @property
    def no_child(self) -> bool:
        """Label and cluster directories only ever contain files."""
        return self.kind in (NodeKind.LABEL, NodeKind.CLUSTER)

    def file_info(self) -> dict:
        return {
            "uri": self.uri,
            "kind": self.kind.value,
            "file_type": "directory",
            "content_type": CONTENT_TYPE,
            "display_name": self.display_name,
            "name": self.internal_name,
            "count": self.count,
            "icon": ICON_NAME,
            "can_read": True,
            "can_write": False,
            "can_delete": False,
            "can_rename": False,
            "no_child": self.no_child,
        }


@dataclasses.dataclass(frozen=True)
class FileEntry:
    """A real photograph listed under a label or cluster directory."""

    path: str
    size: int
    mtime: float

    @property
    def kind(self) -> NodeKind:
        return NodeKind.FILE

    @property
    def uri(self) -> str:
        return Path(self.path).absolute().as_uri()

    def file_info(self) -> dict:
        return {
            "uri": self.uri,
            "kind": self.kind.value,
            "file_type": "regular",
            "path": self.path,
            "size": self.size,
            "mtime": self.mtime,
        }


def root_node() -> TreeNode:
    return TreeNode(NodeKind.ROOT, RootRef(), ROOT_DISPLAY_NAME, "")


def label_node(label: str, count: int | None = None) -> TreeNode:
    display = UNKNOWN_DISPLAY_NAME if label == UNKNOWN_LABEL else label
    return TreeNode(NodeKind.LABEL, LabelRef(label), display, escape_label(label), count)


def cluster_node(group_id: int, count: int | None = None) -> TreeNode:
    ref = ClusterRef(group_id)
    display = f"{UNKNOWN_DISPLAY_NAME} #{group_id}"
    if count is not None:
        display += f" ({count})"
    return TreeNode(NodeKind.CLUSTER, ref, display, f"{CLUSTER_PREFIX}{group_id}", count)


def node_for(ref: NodeRef, count: int | None = None) -> TreeNode:
    if isinstance(ref, LabelRef):
        return label_node(ref.name, count)
    if isinstance(ref, ClusterRef):
        return cluster_node(ref.group_id, count)
    return root_node()
