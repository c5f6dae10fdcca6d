"""Read and edit Xcode ``project.pbxproj`` files without reformatting them.

The file is an OpenStep-style property list. It is parsed into a small tree
(``PBXDict``, ``PBXArray``, ``PBXString``, ``PBXData``) in which every node
remembers the span of source text it came from. Edits are recorded against
those spans and ``Document.render()`` splices them into the original text, so
everything that was not edited comes back byte for byte.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional, Union

_UNQUOTED_RE = re.compile(r"(?:[A-Za-z0-9_$+:.\-~@]|/(?![/*]))+")
_SAFE_UNQUOTED_RE = re.compile(r"[A-Za-z0-9_$/.]+")
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", '"': '"', "'": "'", "a": "\a", "b": "\b", "f": "\f", "v": "\v"}


class PBXParseError(ValueError):
    def __init__(self, message: str, text: str = "", offset: int = 0):
        line = text.count("\n", 0, offset) + 1 if text else 0
        super().__init__(f"{message} (line {line})" if line else message)
        self.offset = offset
        self.line = line


@dataclass
class PBXString:
    value: str
    start: int
    end: int
    quoted: bool = False


@dataclass
class PBXData:
    value: bytes
    start: int
    end: int


@dataclass
class PBXArray:
    items: list
    start: int
    end: int

    def __iter__(self):
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


@dataclass
class PBXEntry:
    key: PBXString
    value: "PBXNode"
    start: int
    end: int


@dataclass
class PBXDict:
    entries: list[PBXEntry]
    start: int
    end: int

    def entry(self, key: str) -> Optional[PBXEntry]:
        for item in self.entries:
            if item.key.value == key:
                return item
        return None

    def get(self, key: str, default=None):
        found = self.entry(key)
        return found.value if found is not None else default

    def get_str(self, key: str) -> Optional[str]:
        node = self.get(key)
        return node.value if isinstance(node, PBXString) else None

    def keys(self) -> list[str]:
        return [item.key.value for item in self.entries]

    def __contains__(self, key: str) -> bool:
        return self.entry(key) is not None


PBXNode = Union[PBXDict, PBXArray, PBXString, PBXData]


class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def error(self, message: str) -> PBXParseError:
        return PBXParseError(message, self.text, self.pos)

    def skip(self) -> None:
        text = self.text
        while self.pos < len(text):
            ch = text[self.pos]
            if ch.isspace():
                self.pos += 1
            elif text.startswith("//", self.pos):
                newline = text.find("\n", self.pos)
                self.pos = len(text) if newline < 0 else newline + 1
            elif text.startswith("/*", self.pos):
                close = text.find("*/", self.pos + 2)
                if close < 0:
                    raise self.error("unterminated comment")
                self.pos = close + 2
            else:
                break

    def peek(self) -> str:
        self.skip()
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def expect(self, ch: str) -> None:
        if self.peek() != ch:
            found = self.text[self.pos] if self.pos < len(self.text) else "end of file"
            raise self.error(f"expected {ch!r}, found {found!r}")
        self.pos += 1

    def parse_document(self) -> PBXNode:
        root = self.parse_value()
        if self.peek():
            raise self.error("unexpected content after root object")
        return root

    def parse_value(self) -> PBXNode:
        ch = self.peek()
        if ch == "{":
            return self.parse_dict()
        if ch == "(":
            return self.parse_array()
        if ch == "<":
            return self.parse_data()
        if ch == "":
            raise self.error("unexpected end of file")
        return self.parse_string()

    def parse_dict(self) -> PBXDict:
        start = self.pos
        self.expect("{")
        entries: list[PBXEntry] = []
        while self.peek() != "}":
            if not self.peek():
                raise self.error("unterminated dictionary")
            key = self.parse_string()
            self.expect("=")
            value = self.parse_value()
            self.expect(";")
            entries.append(PBXEntry(key, value, key.start, self.pos))
        self.pos += 1
        return PBXDict(entries, start, self.pos)

    def parse_array(self) -> PBXArray:
        start = self.pos
        self.expect("(")
        items: list = []
        while self.peek() != ")":
            if not self.peek():
                raise self.error("unterminated array")
            items.append(self.parse_value())
            if self.peek() == ",":
                self.pos += 1
            elif self.peek() != ")":
                raise self.error("expected ',' or ')' in array")
        self.pos += 1
        return PBXArray(items, start, self.pos)

    def parse_data(self) -> PBXData:
        start = self.pos
        close = self.text.find(">", self.pos)
        if close < 0:
            raise self.error("unterminated data")
        digits = re.sub(r"\s+", "", self.text[self.pos + 1:close])
        try:
            value = bytes.fromhex(digits)
        except ValueError:
            raise self.error("invalid data literal") from None
        self.pos = close + 1
        return PBXData(value, start, self.pos)

    def parse_string(self) -> PBXString:
        self.skip()
        start = self.pos
        text = self.text
        if start < len(text) and text[start] in "\"'":
            quote = text[start]
            chars: list[str] = []
            i = start + 1
            while i < len(text) and text[i] != quote:
                if text[i] == "\\" and i + 1 < len(text):
                    i += 1
                    esc = text[i]
                    if esc == "U" and re.fullmatch(r"[0-9A-Fa-f]{4}", text[i + 1:i + 5]):
                        chars.append(chr(int(text[i + 1:i + 5], 16)))
                        i += 4
                    else:
                        chars.append(_ESCAPES.get(esc, esc))
                else:
                    chars.append(text[i])
                i += 1
            if i >= len(text):
                self.pos = start
                raise self.error("unterminated string")
            self.pos = i + 1
            return PBXString("".join(chars), start, self.pos, quoted=True)
        match = _UNQUOTED_RE.match(text, start)
        if not match:
            raise self.error("expected a value")
        self.pos = match.end()
        return PBXString(match.group(0), start, self.pos)


def parse(text: str) -> PBXNode:
    return _Parser(text).parse_document()


def quote_string(value: str) -> str:
    if _SAFE_UNQUOTED_RE.fullmatch(value):
        return value
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\t", "\\t")
    )
    return f'"{escaped}"'


@dataclass
class BuildConfiguration:
    object_id: str
    name: str
    settings: PBXDict
    target_name: Optional[str] = None
    target_kind: Optional[str] = None

    @property
    def label(self) -> str:
        if self.target_name is None:
            return f"{self.object_id} [{self.name}]"
        return f'{self.target_kind} "{self.target_name}" [{self.name}]'


@dataclass
class Document:
    text: str
    root: PBXDict
    _edits: dict = field(default_factory=dict)
    _inserts: list = field(default_factory=list)

    @classmethod
    def from_text(cls, text: str) -> "Document":
        root = parse(text)
        if not isinstance(root, PBXDict):
            raise PBXParseError("root object is not a dictionary")
        return cls(text, root)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Document":
        return cls.from_text(Path(path).read_text(encoding="utf-8"))

    @property
    def objects(self) -> PBXDict:
        objects = self.root.get("objects")
        if not isinstance(objects, PBXDict):
            raise PBXParseError("project has no objects dictionary")
        return objects

    @property
    def changed(self) -> bool:
        return bool(self._edits or self._inserts)

    def source(self, node: Union[PBXNode, PBXEntry]) -> str:
        return self.text[node.start:node.end]

    def iter_objects(self, isa: Optional[str] = None) -> Iterator[tuple[str, PBXDict]]:
        for item in self.objects.entries:
            if not isinstance(item.value, PBXDict):
                continue
            if isa is None or item.value.get_str("isa") == isa:
                yield item.key.value, item.value

    def set_string(self, node: PBXString, value: str) -> None:
        if node.value == value:
            return
        self._edits[(node.start, node.end)] = quote_string(value)
        node.value = value

    def set_setting(self, settings: PBXDict, key: str, value: str) -> None:
        """Update ``key`` in ``settings`` or insert it before the closing brace."""
        existing = settings.get(key)
        if isinstance(existing, PBXString):
            self.set_string(existing, value)
            return
        if existing is not None:
            found = settings.entry(key)
            self._edits[(found.value.start, found.value.end)] = quote_string(value)
            return
        close = settings.end - 1
        line_start = self.text.rfind("\n", 0, close) + 1
        closing_indent = self.text[line_start:close]
        line = f"{quote_string(key)} = {quote_string(value)};"
        if closing_indent.strip():
            self._inserts.append((close, f"{line} "))
            return
        if settings.entries:
            last = settings.entries[-1]
            last_line = self.text.rfind("\n", 0, last.start) + 1
            indent = self.text[last_line:last.start]
            if indent.strip():
                indent = closing_indent + "\t"
        else:
            indent = closing_indent + "\t"
        self._inserts.append((line_start, f"{indent}{line}\n"))

    def render(self) -> str:
        patches = [(start, end, order, new) for order, ((start, end), new) in enumerate(self._edits.items())]
        offset = len(patches)
        patches += [(pos, pos, offset + order, new) for order, (pos, new) in enumerate(self._inserts)]
        text = self.text
        for start, end, _order, new in sorted(patches, reverse=True):
            text = text[:start] + new + text[end:]
        return text

    def build_configurations(self) -> list[BuildConfiguration]:
        owners: dict[str, tuple[str, str]] = {}
        lists: dict[str, list[str]] = {}
        for list_id, node in self.iter_objects("XCConfigurationList"):
            configs = node.get("buildConfigurations")
            if isinstance(configs, PBXArray):
                lists[list_id] = [item.value for item in configs if isinstance(item, PBXString)]
        for object_id, node in self.iter_objects():
            list_id = node.get_str("buildConfigurationList")
            if list_id not in lists:
                continue
            kind = node.get_str("isa") or "Unknown"
            name = node.get_str("name") or ("Project" if kind == "PBXProject" else object_id)
            for config_id in lists[list_id]:
                owners.setdefault(config_id, (kind, name))

        found: list[BuildConfiguration] = []
        for object_id, node in self.iter_objects("XCBuildConfiguration"):
            settings = node.get("buildSettings")
            if not isinstance(settings, PBXDict):
                continue
            kind, name = owners.get(object_id, (None, None))
            found.append(
                BuildConfiguration(
                    object_id=object_id,
                    name=node.get_str("name") or "",
                    settings=settings,
                    target_name=name,
                    target_kind=kind,
                )
            )
        return found


def validate_structure(text: str) -> Document:
    """Parse ``text`` and check it looks like a project; raise on failure."""
    doc = Document.from_text(text)
    if not isinstance(doc.root.get("objects"), PBXDict):
        raise PBXParseError("project has no objects dictionary")
    if doc.root.get_str("rootObject") is None:
        raise PBXParseError("project has no rootObject")
    return doc


def is_structurally_valid(path: Union[str, Path]) -> bool:
    try:
        validate_structure(Path(path).read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, PBXParseError):
        return False
    return True
