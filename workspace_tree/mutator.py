"""Structural operations over a ``Forest``.

Every function takes a forest and returns a new one; the input is never
modified. Validation runs before any new state is built, so a raised
``ValidationError`` or ``NotFoundError`` leaves the caller holding exactly the
forest it passed in. No-op requests return the input object itself.
"""

import logging
import re
from dataclasses import replace
from typing import Iterable, Literal

from workspace_tree.entries import Entry, Forest, ForestBuilder, new_id
from workspace_tree.errors import NotFoundError, ValidationError
from workspace_tree.paths import join_path, split_extension, split_path, validate_name

logger = logging.getLogger(__name__)

MAX_DUPLICATE_ATTEMPTS = 200
_COPY_SUFFIX = re.compile(r"( copy)( \d+)?$", re.IGNORECASE)

Direction = Literal["up", "down"]


def _sibling_names(forest: Forest, parent_id: str | None, exclude_id: str | None = None) -> set[str]:
    return {entry.name.lower() for entry in forest.children_of(parent_id) if entry.id != exclude_id}


def _ensure_unique(forest: Forest, parent_id: str | None, name: str, exclude_id: str | None = None) -> None:
    if name.lower() in _sibling_names(forest, parent_id, exclude_id):
        raise ValidationError(f"An item named {name!r} already exists here.")


def _parent_path(forest: Forest, parent_id: str | None) -> str | None:
    parent = forest.get(parent_id)
    return parent.path if parent else None


def _cascade_paths(builder: ForestBuilder, forest: Forest, entry_id: str, new_path: str) -> None:
    entry = forest.nodes[entry_id]
    if not entry.is_folder:
        return
    new_paths = {entry_id: new_path}
    for descendant in forest.walk(entry_id):
        path = join_path(new_paths[descendant.parent_id], descendant.name)
        new_paths[descendant.id] = path
        builder.put(replace(descendant, path=path))


def unique_name(existing: Iterable[str], name: str) -> str:
    taken = {item.lower() for item in existing}
    if name.lower() not in taken:
        return name
    stem, ext = split_extension(name)
    counter = 1
    while f"{stem} ({counter}){ext}".lower() in taken:
        counter += 1
    return f"{stem} ({counter}){ext}"


def duplicate_name(existing: Iterable[str], entry: Entry) -> str:
    taken = {item.lower() for item in existing}
    stem, ext = (entry.name, "") if entry.is_folder else split_extension(entry.name)
    base = _COPY_SUFFIX.sub("", stem)
    candidate = f"{base} copy{ext}"
    attempt = 2
    while candidate.lower() in taken:
        if attempt > MAX_DUPLICATE_ATTEMPTS:
            raise ValidationError(f"Could not find a free name to duplicate {entry.name!r}.")
        candidate = f"{base} copy {attempt}{ext}"
        attempt += 1
    return candidate


def create_file(
    forest: Forest,
    parent_id: str | None,
    name: str,
    content: str = "",
    entry_id: str | None = None,
) -> tuple[Forest, str]:
    parent = forest.require_folder(parent_id)
    name = validate_name(name)
    _ensure_unique(forest, parent_id, name)
    if entry_id is not None and entry_id in forest:
        raise ValidationError(f"Entry id already in use: {entry_id}")
    entry = Entry.file(
        name,
        join_path(parent.path if parent else None, name),
        content=content,
        parent_id=parent_id,
        entry_id=entry_id,
    )
    builder = ForestBuilder(forest)
    builder.attach(entry)
    return builder.build(), entry.id


def create_folder(
    forest: Forest,
    parent_id: str | None,
    name: str,
    entry_id: str | None = None,
) -> tuple[Forest, str]:
    parent = forest.require_folder(parent_id)
    name = validate_name(name)
    _ensure_unique(forest, parent_id, name)
    if entry_id is not None and entry_id in forest:
        raise ValidationError(f"Entry id already in use: {entry_id}")
    entry = Entry.folder(name, join_path(parent.path if parent else None, name), parent_id=parent_id, entry_id=entry_id)
    builder = ForestBuilder(forest)
    builder.attach(entry)
    return builder.build(), entry.id


def rename_node(forest: Forest, node_id: str, new_name: str) -> Forest:
    entry = forest.require(node_id)
    name = validate_name(new_name)
    if name == entry.name:
        return forest
    _ensure_unique(forest, entry.parent_id, name, exclude_id=node_id)
    new_path = join_path(_parent_path(forest, entry.parent_id), name)
    builder = ForestBuilder(forest)
    builder.put(replace(entry, name=name, path=new_path))
    _cascade_paths(builder, forest, node_id, new_path)
    return builder.build()


def move_node_to_folder(
    forest: Forest,
    node_id: str,
    dest_folder_id: str | None = None,
    index: int | None = None,
) -> Forest:
    entry = forest.require(node_id)
    if dest_folder_id == node_id:
        logger.debug("Ignoring move of %s into itself", node_id)
        return forest
    dest = forest.require_folder(dest_folder_id)
    if dest_folder_id is not None and forest.is_descendant(node_id, dest_folder_id):
        logger.debug("Ignoring move of %s into its own subtree %s", node_id, dest_folder_id)
        return forest

    builder = ForestBuilder(forest)
    old_position = builder.detach(node_id)
    siblings = builder.siblings(dest_folder_id)
    name = unique_name((builder.get(sibling_id).name for sibling_id in siblings), entry.name)
    if index is None or index < 0 or index > len(siblings):
        index = len(siblings)
    if dest_folder_id == entry.parent_id and name == entry.name and index == old_position:
        return forest

    new_path = join_path(dest.path if dest else None, name)
    builder.attach(replace(entry, name=name, path=new_path, parent_id=dest_folder_id), index)
    _cascade_paths(builder, forest, node_id, new_path)
    return builder.build()


def move_node_within_siblings(forest: Forest, node_id: str, direction: Direction = "up") -> Forest:
    if direction not in ("up", "down"):
        raise ValidationError(f"Unknown direction: {direction!r}")
    entry = forest.require(node_id)
    ids = list(forest.child_ids(entry.parent_id))
    position = ids.index(node_id)
    target = position - 1 if direction == "up" else position + 1
    if target < 0 or target >= len(ids):
        return forest
    ids[position], ids[target] = ids[target], ids[position]
    builder = ForestBuilder(forest)
    builder.set_siblings(entry.parent_id, ids)
    return builder.build()


def move_node_to_parent_folder(forest: Forest, node_id: str) -> Forest:
    entry = forest.require(node_id)
    if entry.parent_id is None:
        return forest
    parent = forest.require(entry.parent_id)
    return move_node_to_folder(forest, node_id, parent.parent_id, None)


def delete_node(forest: Forest, node_id: str) -> Forest:
    forest.require(node_id)
    builder = ForestBuilder(forest)
    builder.detach(node_id)
    removed = builder.remove_subtree(node_id)
    logger.debug("Deleted %d entries under %s", len(removed), node_id)
    return builder.build()


def duplicate_node(forest: Forest, node_id: str, deep: bool = False) -> tuple[Forest, str]:
    """Copy an entry next to itself under a ``copy`` name.

    Folders are duplicated as an empty shell unless ``deep`` is set, in which
    case every descendant is copied with fresh ids.
    """
    entry = forest.require(node_id)
    name = duplicate_name((sibling.name for sibling in forest.children_of(entry.parent_id)), entry)
    if not entry.is_folder:
        return create_file(forest, entry.parent_id, name, entry.content or "")
    duplicated, copy_id = create_folder(forest, entry.parent_id, name)
    if not deep:
        return duplicated, copy_id

    builder = ForestBuilder(duplicated)
    id_map = {node_id: copy_id}
    paths = {copy_id: duplicated.nodes[copy_id].path}
    for descendant in forest.walk(node_id):
        parent_copy = id_map[descendant.parent_id]
        copy = replace(
            descendant,
            id=new_id(),
            parent_id=parent_copy,
            path=join_path(paths[parent_copy], descendant.name),
            children=() if descendant.is_folder else None,
        )
        id_map[descendant.id] = copy.id
        paths[copy.id] = copy.path
        builder.attach(copy)
    return builder.build(), copy_id


def ensure_folder_path(forest: Forest, start_parent_id: str | None, segments: Iterable[str]) -> tuple[Forest, str | None]:
    forest.require_folder(start_parent_id)
    names = [validate_name(part) for segment in segments for part in split_path(segment or "")]
    current = forest
    parent_id = start_parent_id
    for name in names:
        match = next((child for child in current.children_of(parent_id) if child.name.lower() == name.lower()), None)
        if match is None:
            current, parent_id = create_folder(current, parent_id, name)
            continue
        if not match.is_folder:
            raise ValidationError(f"A file named {match.name!r} already exists at {match.path!r}.")
        parent_id = match.id
    return current, parent_id


def update_file_content(forest: Forest, node_id: str, content: str) -> Forest:
    entry = forest.require(node_id)
    if entry.is_folder:
        raise ValidationError("Folders do not support content.")
    if entry.content == content:
        return forest
    builder = ForestBuilder(forest)
    builder.put(replace(entry, content=content))
    return builder.build()


def update_file_content_by_path(forest: Forest, path: str, content: str) -> Forest:
    entry = forest.find_by_path(path)
    if entry is None:
        raise NotFoundError(f"No entry at path: {path}")
    return update_file_content(forest, entry.id, content)
