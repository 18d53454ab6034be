import re

from workspace_tree.errors import ValidationError

SEPARATOR = "/"
_ILLEGAL_NAME_CHARS = re.compile(r'[\\/:*?"<>|]')


def normalize_path(raw_path: str) -> str:
    """Canonicalize a slash-delimited path.

    Empty and ``.`` segments are dropped, ``..`` pops the previous segment
    (and is absorbed at the root). A leading slash survives only as the bare
    root sentinel ``"/"``.
    """
    if not raw_path:
        return ""
    trimmed = raw_path.strip()
    segments: list[str] = []
    for segment in trimmed.split(SEPARATOR):
        if not segment or segment == ".":
            continue
        if segment == "..":
            if segments:
                segments.pop()
            continue
        segments.append(segment)
    if not segments:
        return SEPARATOR if trimmed.startswith(SEPARATOR) else ""
    return SEPARATOR.join(segments)


def join_path(parent: str | None, name: str) -> str:
    if not parent or parent == SEPARATOR:
        return normalize_path(name)
    return normalize_path(f"{parent}{SEPARATOR}{name}")


def split_path(path: str) -> list[str]:
    normalized = normalize_path(path)
    if not normalized or normalized == SEPARATOR:
        return []
    return normalized.split(SEPARATOR)


def parent_path(path: str) -> str:
    return SEPARATOR.join(split_path(path)[:-1])


def base_name(path: str) -> str:
    segments = split_path(path)
    return segments[-1] if segments else ""


def path_depth(path: str) -> int:
    return len(split_path(path))


def validate_name(name: str) -> str:
    if name is None or not name.strip():
        raise ValidationError("Name cannot be empty.")
    if _ILLEGAL_NAME_CHARS.search(name):
        raise ValidationError(f"Name contains invalid characters: {name!r}")
    if name.strip() in {".", ".."}:
        raise ValidationError(f"Name is reserved: {name!r}")
    return name.strip()


def split_extension(name: str) -> tuple[str, str]:
    dot = name.rfind(".")
    if dot <= 0:
        return name, ""
    return name[:dot], name[dot:]
