"""
Canonical document model.

The canonical document is the post-transform structure that drives
rendering. It is independent of the upstream record schema and is built
exactly once, from canonical XML, by the XML transformer.

Shape of the canonical XML::

    <ecv>
      <name/> <employeeId/> <title/> <department/> <academicYear/>
      <categories>
        <category code="..." heading="...">
          <record>
            <title/> <role/> <startDate/> <endDate/> <hours/>
            <description/> <reflections/> <url/> <deliverables/>
          </record>
        </category>
      </categories>
    </ecv>

The four free-text fields hold markup as text (CDATA in the transform
output). A free-text node that instead carries child elements is kept
verbatim and flagged ``structured``.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from lxml import etree
from pydantic import BaseModel, ConfigDict, Field, field_validator


MARKUP_FIELDS: Tuple[str, ...] = ("description", "reflections", "url", "deliverables")


class MarkupText(BaseModel):
    value: str = ""
    structured: bool = False

    model_config = ConfigDict(frozen=True)

    def __bool__(self) -> bool:
        return bool(self.value.strip())


class Record(BaseModel):
    title: str = ""
    role: str = ""
    start_date: str = ""
    end_date: str = ""
    hours: str = ""

    description: MarkupText = MarkupText()
    reflections: MarkupText = MarkupText()
    url: MarkupText = MarkupText()
    deliverables: MarkupText = MarkupText()

    model_config = ConfigDict(frozen=True)


class RecordCategory(BaseModel):
    code: str
    heading: str
    records: List[Record] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class CanonicalDocument(BaseModel):
    name: str
    employee_id: str = ""
    title: str = ""
    department: str = ""
    academic_year: Optional[str] = None
    categories: List[RecordCategory] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @field_validator("name")
    @classmethod
    def _name_present(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("canonical document has no name")
        return value

    @property
    def records(self) -> List[Record]:
        return [r for c in self.categories for r in c.records]

    # ------------------------------------------------------------------
    # Construction from canonical XML
    # ------------------------------------------------------------------

    @classmethod
    def from_element(cls, root: etree._Element) -> "CanonicalDocument":
        if root.tag != "ecv":
            raise ValueError(f"unexpected canonical root <{root.tag}>")

        categories = []
        for cat in root.iterfind("categories/category"):
            categories.append(
                RecordCategory(
                    code=cat.get("code", ""),
                    heading=cat.get("heading", ""),
                    records=[_record(el) for el in cat.iterfind("record")],
                )
            )

        return cls(
            name=_text(root, "name"),
            employee_id=_text(root, "employeeId"),
            title=_text(root, "title"),
            department=_text(root, "department"),
            academic_year=_text(root, "academicYear") or None,
            categories=categories,
        )


def _text(parent: etree._Element, tag: str) -> str:
    node = parent.find(tag)
    if node is None:
        return ""
    return "".join(node.itertext()).strip()


def _markup(parent: etree._Element, tag: str) -> MarkupText:
    node = parent.find(tag)
    if node is None:
        return MarkupText()
    if len(node):
        inner = (node.text or "") + "".join(
            etree.tostring(child, encoding="unicode") for child in node
        )
        return MarkupText(value=inner, structured=True)
    return MarkupText(value=node.text or "")


def _record(el: etree._Element) -> Record:
    fields = {tag: _markup(el, tag) for tag in MARKUP_FIELDS}
    return Record(
        title=_text(el, "title"),
        role=_text(el, "role"),
        start_date=_text(el, "startDate"),
        end_date=_text(el, "endDate"),
        hours=_text(el, "hours"),
        **fields,
    )
