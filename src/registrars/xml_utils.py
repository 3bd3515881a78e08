"""
ElementTree helpers for the XML/SOAP registrar protocols
Vendors mix namespaced and plain documents, so lookups go by local name
"""

import xml.etree.ElementTree as ET
from typing import Any, Dict, Iterable, Iterator, List, Optional

from src.registrars.exceptions import InvalidResponseError


def local_name(tag: str) -> str:
    """'{http://ns}Status' -> 'Status'"""
    return tag.rsplit("}", 1)[-1] if isinstance(tag, str) else ""


def parse_xml(text: str, provider: str) -> ET.Element:
    """Parse a response body, raising InvalidResponseError on garbage"""
    try:
        return ET.fromstring(text)
    except ET.ParseError as e:
        raise InvalidResponseError(
            f"{provider} returned malformed XML: {e}",
            response_data={"body": text[:500]}
        )


def iter_local(element: ET.Element, name: str) -> Iterator[ET.Element]:
    """All descendants (and the element itself) with the given local name"""
    for node in element.iter():
        if local_name(node.tag) == name:
            yield node


def find_local(element: Optional[ET.Element], name: str) -> Optional[ET.Element]:
    if element is None:
        return None
    return next(iter_local(element, name), None)


def child_local(element: Optional[ET.Element], name: str) -> Optional[ET.Element]:
    """Direct child with the given local name"""
    if element is None:
        return None
    for node in element:
        if local_name(node.tag) == name:
            return node
    return None


def text_of(element: Optional[ET.Element], name: str, default: Optional[str] = None) -> Optional[str]:
    """Text of the first descendant named ``name``"""
    node = find_local(element, name)
    if node is None or node.text is None:
        return default
    return node.text.strip()


def child_text(element: Optional[ET.Element], name: str, default: Optional[str] = None) -> Optional[str]:
    node = child_local(element, name)
    if node is None or node.text is None:
        return default
    return node.text.strip()


def texts_of(element: Optional[ET.Element], name: str) -> List[str]:
    if element is None:
        return []
    return [n.text.strip() for n in iter_local(element, name) if n.text and n.text.strip()]


def sub_element(parent: ET.Element, tag: str, text: Any = None, **attrib: str) -> ET.Element:
    """SubElement that accepts non-string text and skips None"""
    node = ET.SubElement(parent, tag, {k: str(v) for k, v in attrib.items()})
    if text is not None:
        node.text = str(text)
    return node


def element_from_dict(tag: str, data: Dict[str, Any]) -> ET.Element:
    """
    Build ``<tag><key>value</key>...</tag>``; nested dicts become nested
    elements and lists repeat the key's singular child (see ``list_items``).
    """
    root = ET.Element(tag)
    _fill(root, data)
    return root


def _fill(parent: ET.Element, data: Dict[str, Any]) -> None:
    for key, value in data.items():
        if isinstance(value, dict):
            _fill(ET.SubElement(parent, key), value)
        elif isinstance(value, ListItems):
            wrapper = ET.SubElement(parent, key)
            for item in value.items:
                if isinstance(item, dict):
                    _fill(ET.SubElement(wrapper, value.item_tag), item)
                else:
                    sub_element(wrapper, value.item_tag, item)
        elif value is not None:
            sub_element(parent, key, bool_text(value) if isinstance(value, bool) else value)
        else:
            ET.SubElement(parent, key)


class ListItems:
    """Marker for a repeated child element inside ``element_from_dict``"""

    def __init__(self, item_tag: str, items: Iterable[Any]):
        self.item_tag = item_tag
        self.items = list(items)


def list_items(item_tag: str, items: Iterable[Any]) -> ListItems:
    return ListItems(item_tag, items)


def bool_text(value: bool) -> str:
    return "true" if value else "false"


def is_true(value: Optional[str]) -> bool:
    return str(value).strip().lower() in ("true", "1", "yes", "y", "on", "enabled")


def to_string(element: ET.Element) -> str:
    return ET.tostring(element, encoding="unicode")


def to_document(element: ET.Element) -> str:
    """Serialize with an XML declaration"""
    return '<?xml version="1.0" encoding="UTF-8"?>' + to_string(element)
