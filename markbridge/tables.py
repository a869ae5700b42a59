"""Table normalization: span expansion, header promotion and cell linearization.

Every table leaving this module has rectangular rows, no span attributes,
exactly one header row inside a <thead>, and single-line cell content, so the
renderer can always emit a valid pipe table.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from bs4 import NavigableString, Tag

from .config import HEADER_BACKGROUND_COLORS, HEADER_LABEL_MAX_CHARS, MAX_COLSPAN, MAX_ROWSPAN
from .utils import (
    class_list,
    collapse_whitespace,
    copy_attrs,
    is_blank_text,
    owner_document,
    significant_children,
    text_of,
)

logger = logging.getLogger("markbridge")

SECTION_TAGS = ("thead", "tbody", "tfoot")
CELL_TAGS = ("td", "th")
CELL_BLOCK_TAGS = ["p", "div", "h1", "h2", "h3", "h4", "h5", "h6"]
LABEL_BLOCKERS = ["img", "pre", "code", "table"]
SIZING_ATTRIBUTES = ("width", "height")
SPAN_ATTRIBUTES = ("colspan", "rowspan")
TABLE_WRAPPER_SELECTOR = ".table-wrap, .tablesorter-header-inner, div.scroll-wrapper"

HEADER_CLASS_PATTERN = re.compile(r"confluenceTh|highlight-grey|highlight", re.IGNORECASE)
ROW_HEADER_CLASS_PATTERN = re.compile(r"confluenceTh", re.IGNORECASE)
HEADER_BACKGROUND_PATTERN = re.compile(
    r"background-color\s*:\s*(?:"
    + "|".join(re.escape(color) for color in HEADER_BACKGROUND_COLORS)
    + r")",
    re.IGNORECASE,
)


@dataclass
class GridEntry:
    """One slot of the expanded table grid."""

    origin_row: int
    origin_col: int
    is_origin: bool
    cell: Tag


def table_rows(table: Tag) -> List[Tag]:
    """Rows that belong to this table (not to nested tables), in document order."""
    rows: List[Tag] = []
    for child in table.find_all(recursive=False):
        if child.name == "tr":
            rows.append(child)
        elif child.name in SECTION_TAGS:
            rows.extend(child.find_all("tr", recursive=False))
    return rows


def row_cells(row: Tag) -> List[Tag]:
    return [child for child in row.find_all(recursive=False) if child.name in CELL_TAGS]


def _span(cell: Tag, attribute: str) -> int:
    """Span value, 1 when missing or invalid, capped at the HTML parsing limits."""
    try:
        value = int(str(cell.get(attribute, "")).strip())
    except ValueError:
        return 1
    if value < 1:
        return 1
    return min(value, MAX_COLSPAN if attribute == "colspan" else MAX_ROWSPAN)


def column_count(rows: List[Tag]) -> int:
    """Widest row measured as the sum of its cells' column spans."""
    return max(
        (sum(_span(cell, "colspan") for cell in row_cells(row)) for row in rows),
        default=0,
    )


def build_grid(rows: List[Tag]) -> List[Dict[int, GridEntry]]:
    """Place every cell on a grid, marking the slots its spans cover."""
    grid: List[Dict[int, GridEntry]] = [{} for _ in rows]
    for r, row in enumerate(rows):
        col = 0
        for cell in row_cells(row):
            while col in grid[r]:
                col += 1
            colspan = _span(cell, "colspan")
            rowspan = min(_span(cell, "rowspan"), len(rows) - r)
            for dr in range(rowspan):
                for dc in range(colspan):
                    grid[r + dr].setdefault(
                        col + dc,
                        GridEntry(r, col, dr == 0 and dc == 0, cell),
                    )
            col += colspan
    return grid


def expand_merged_cells(table: Tag) -> int:
    """Expand colspan/rowspan so every row carries the same number of cells.

    Returns the resulting column count.
    """
    rows = table_rows(table)
    if not rows:
        return 0

    grid = build_grid(rows)
    width = max(
        column_count(rows),
        max((max(slots) + 1 for slots in grid if slots), default=0),
    )
    factory = owner_document(table)

    for r, row in enumerate(rows):
        for cell in row_cells(row):
            cell.extract()
        for child in list(row.children):
            if is_blank_text(child):
                child.extract()
        for c in range(width):
            entry = grid[r].get(c)
            if entry is not None and entry.is_origin:
                for attribute in SPAN_ATTRIBUTES:
                    if attribute in entry.cell.attrs:
                        del entry.cell[attribute]
                row.append(entry.cell)
            elif entry is not None:
                row.append(
                    factory.new_tag(
                        entry.cell.name,
                        attrs=copy_attrs(entry.cell, exclude=SPAN_ATTRIBUTES),
                    )
                )
            else:
                row.append(factory.new_tag("td"))
    return width


def is_header_like(cell: Tag) -> bool:
    """Heuristic for cells the wiki styles as headers without using <th>."""
    if cell.name == "th":
        return True
    if HEADER_CLASS_PATTERN.search(" ".join(class_list(cell))):
        return True
    if cell.has_attr("data-highlight-colour"):
        return True
    if HEADER_BACKGROUND_PATTERN.search(cell.get("style", "") or ""):
        return True
    children = significant_children(cell)
    return (
        len(children) == 1
        and isinstance(children[0], Tag)
        and children[0].name in ("b", "strong")
    )


def promote_header_cells(table: Tag) -> bool:
    """Retag header-styled cells as <th>. Returns True when the first row was promoted."""
    rows = table_rows(table)
    if not rows:
        return False

    first_cells = row_cells(rows[0])
    promoted = bool(first_cells) and all(is_header_like(cell) for cell in first_cells)
    if promoted:
        for cell in first_cells:
            cell.name = "th"

    for row in rows[1:]:
        for cell in row_cells(row):
            if cell.name == "td" and ROW_HEADER_CLASS_PATTERN.search(" ".join(class_list(cell))):
                cell.name = "th"
    return promoted


def _section(table: Tag, name: str, create: bool = True) -> Optional[Tag]:
    section = table.find(name, recursive=False)
    if section is None and create:
        section = owner_document(table).new_tag(name)
        if name == "thead":
            table.insert(0, section)
        else:
            table.append(section)
    return section


def _move_loose_rows(table: Tag, thead: Tag) -> None:
    """Move top-level rows and surplus header rows into the body section."""
    loose = [child for child in table.find_all("tr", recursive=False)]
    surplus = thead.find_all("tr", recursive=False)[1:]
    if not loose and not surplus:
        return
    tbody = _section(table, "tbody")
    for row in reversed(surplus):
        tbody.insert(0, row.extract())
    for row in loose:
        tbody.append(row.extract())


def ensure_thead(table: Tag) -> None:
    """Wrap an all-<th> first row in a <thead> and the remaining rows in a <tbody>."""
    rows = table_rows(table)
    if not rows:
        return
    first_row = rows[0]
    cells = row_cells(first_row)
    if not cells or not all(cell.name == "th" for cell in cells):
        return
    if first_row.parent is not None and first_row.parent.name == "thead":
        _move_loose_rows(table, first_row.parent)
        return

    thead = _section(table, "thead")
    thead.insert(0, first_row.extract())
    _move_loose_rows(table, thead)


def _usable_label(cell: Tag) -> Optional[str]:
    text = text_of(cell)
    if 0 < len(text) < HEADER_LABEL_MAX_CHARS and cell.find(LABEL_BLOCKERS) is None:
        return text
    return None


def ensure_header_row(table: Tag) -> bool:
    """Synthesize a header row when the first row carries no header cells.

    Labels come from the first row when they are short plain text, otherwise
    ``Column N``. A first row that supplied every label is removed.
    Returns True when a header was synthesized.
    """
    rows = table_rows(table)
    if not rows:
        return False
    first_row = rows[0]
    cells = row_cells(first_row)
    if not cells or any(cell.name == "th" for cell in cells):
        return False

    factory = owner_document(table)
    header_row = factory.new_tag("tr")
    labels = [_usable_label(cell) for cell in cells]
    for index, label in enumerate(labels, start=1):
        th = factory.new_tag("th")
        th.string = label if label is not None else f"Column {index}"
        header_row.append(th)

    thead = _section(table, "thead")
    thead.insert(0, header_row)

    if all(label is not None for label in labels):
        first_row.decompose()
    _move_loose_rows(table, thead)
    logger.debug(
        "Synthesized header row for table with %d column(s) (first row consumed: %s)",
        len(cells),
        all(label is not None for label in labels),
    )
    return True


def _strip_sizing(cell: Tag) -> None:
    for attribute in SIZING_ATTRIBUTES:
        if attribute in cell.attrs:
            del cell[attribute]
    style = cell.get("style")
    if not style:
        return
    declarations = []
    for declaration in style.split(";"):
        name = declaration.split(":", 1)[0].strip().lower()
        if declaration.strip() and name not in SIZING_ATTRIBUTES:
            declarations.append(declaration.strip())
    if declarations:
        cell["style"] = "; ".join(declarations)
    else:
        del cell["style"]


def _has_following_content(node: Tag) -> bool:
    sibling = node.next_sibling
    while sibling is not None:
        if not is_blank_text(sibling):
            return True
        sibling = sibling.next_sibling
    return False


def linearize_cell(cell: Tag) -> None:
    """Flatten block children and whitespace so the cell fits on one line."""
    factory = owner_document(cell)
    blocks = cell.find_all(CELL_BLOCK_TAGS)
    for block in blocks:
        if len(blocks) > 1 and _has_following_content(block):
            block.insert_after(factory.new_tag("br"))
        block.unwrap()

    for text in list(cell.find_all(string=True)):
        if type(text) is not NavigableString or text.find_parent("pre") is not None:
            continue
        collapsed = collapse_whitespace(str(text))
        if collapsed != str(text):
            text.replace_with(NavigableString(collapsed))

    _strip_sizing(cell)


def clean_cell_content(table: Tag) -> None:
    for row in table_rows(table):
        for cell in row_cells(row):
            linearize_cell(cell)


def normalize_table(table: Tag) -> Tag:
    """Run the five normalization steps on one table, in place."""
    expand_merged_cells(table)
    promote_header_cells(table)
    ensure_thead(table)
    ensure_header_row(table)
    clean_cell_content(table)
    return table


def unwrap_table_wrappers(root: Tag) -> int:
    unwrapped = 0
    for wrapper in root.select(TABLE_WRAPPER_SELECTOR):
        if wrapper.parent is None:
            continue
        table = wrapper.find("table")
        if table is not None:
            wrapper.replace_with(table.extract())
            unwrapped += 1
    return unwrapped


def normalize_tables(root: Tag) -> int:
    """Normalize every table under ``root``. Returns the number of tables processed."""
    unwrap_table_wrappers(root)
    tables = root.find_all("table")
    for table in tables:
        normalize_table(table)
    if tables:
        logger.debug("Normalized %d table(s)", len(tables))
    return len(tables)
