"""
app/connectors/response_schemas.py

Pydantic models for every registry response shape and one adapter per shape
into the canonical `PrimaryMatch` / `RegistryProduct` records.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from app.connectors.base import MalformedResponseError
from app.domain.drug_records import Confidence, RegistryProduct

logger = logging.getLogger(__name__)

REVOKED_NAME_MARKERS = ("취소", "취하")


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _as_text_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [text for text in (_as_text(item) for item in value) if text]
    text = _as_text(value)
    return [text] if text else []


@dataclass(frozen=True)
class PrimaryMatch:
    """
    What the primary registry returned for one query token.
    """

    brand_name: str
    generic_name: str
    ingredients: str
    application_number: str

    @property
    def confidence(self) -> str:
        if self.brand_name and self.ingredients:
            return Confidence.HIGH
        return Confidence.MEDIUM


# ---------------------------------------------------------------------------
# Primary registry: label search
# ---------------------------------------------------------------------------


class LabelOpenFDA(BaseModel):
    model_config = ConfigDict(extra="ignore")

    brand_name: list[str] = Field(default_factory=list)
    generic_name: list[str] = Field(default_factory=list)
    application_number: list[str] = Field(default_factory=list)

    @field_validator("brand_name", "generic_name", "application_number", mode="before")
    @classmethod
    def _coerce_list(cls, value: Any) -> list[str]:
        return _as_text_list(value)


class LabelResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    openfda: LabelOpenFDA = Field(default_factory=LabelOpenFDA)
    active_ingredient: list[str] = Field(default_factory=list)

    @field_validator("openfda", mode="before")
    @classmethod
    def _default_openfda(cls, value: Any) -> Any:
        return value if value is not None else {}

    @field_validator("active_ingredient", mode="before")
    @classmethod
    def _coerce_list(cls, value: Any) -> list[str]:
        return _as_text_list(value)


class LabelSearchResult(BaseModel):
    """
    Label search response: name arrays plus free-text active ingredients.
    """

    model_config = ConfigDict(extra="ignore")

    results: list[LabelResult] = Field(default_factory=list)


def adapt_label_result(payload: Any) -> PrimaryMatch | None:
    """
    Convert a label search payload into a match, or `None` when it carries nothing usable.
    """

    try:
        parsed = LabelSearchResult.model_validate(payload)
    except ValidationError as exc:
        logger.warning("Malformed label payload error_count=%s", exc.error_count())
        return None
    if not parsed.results:
        return None

    first = parsed.results[0]
    match = PrimaryMatch(
        brand_name=first.openfda.brand_name[0] if first.openfda.brand_name else "",
        generic_name=first.openfda.generic_name[0] if first.openfda.generic_name else "",
        ingredients="; ".join(first.active_ingredient),
        application_number=first.openfda.application_number[0] if first.openfda.application_number else "",
    )
    if not match.brand_name and not match.ingredients:
        return None
    return match


# ---------------------------------------------------------------------------
# Primary registry: product listing
# ---------------------------------------------------------------------------


class ListedIngredient(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = ""
    strength: str = ""

    @field_validator("name", "strength", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return _as_text(value)


class ProductListingEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    brand_name: str = ""
    generic_name: str = ""
    application_number: str = ""
    active_ingredients: list[ListedIngredient] = Field(default_factory=list)

    @field_validator("brand_name", "generic_name", "application_number", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return _as_text(value)

    @field_validator("active_ingredients", mode="before")
    @classmethod
    def _default_ingredients(cls, value: Any) -> Any:
        return value if value is not None else []


class ProductListingResult(BaseModel):
    """
    Product listing response: flat entries with name + strength ingredient objects.
    """

    model_config = ConfigDict(extra="ignore")

    results: list[ProductListingEntry] = Field(default_factory=list)


def adapt_product_listing_result(payload: Any) -> PrimaryMatch | None:
    try:
        parsed = ProductListingResult.model_validate(payload)
    except ValidationError as exc:
        logger.warning("Malformed product listing payload error_count=%s", exc.error_count())
        return None
    if not parsed.results:
        return None

    first = parsed.results[0]
    ingredients = "; ".join(
        f"{ingredient.name} {ingredient.strength}".strip()
        for ingredient in first.active_ingredients
        if ingredient.name
    )
    match = PrimaryMatch(
        brand_name=first.brand_name,
        generic_name=first.generic_name,
        ingredients=ingredients,
        application_number=first.application_number,
    )
    if not match.brand_name and not match.ingredients:
        return None
    return match


# ---------------------------------------------------------------------------
# Secondary registry: header/body envelope
# ---------------------------------------------------------------------------


class EnvelopeHeader(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    result_code: str = Field(default="", alias="resultCode")
    result_message: str = Field(default="", alias="resultMsg")

    @field_validator("result_code", "result_message", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return _as_text(value)


class EnvelopeBody(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    total_count: int = Field(default=0, alias="totalCount", ge=0)
    page_no: int = Field(default=1, alias="pageNo")
    items: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("total_count", "page_no", mode="before")
    @classmethod
    def _blank_as_default(cls, value: Any) -> Any:
        return 0 if value in (None, "") else value

    @field_validator("items", mode="before")
    @classmethod
    def _unwrap_items(cls, value: Any) -> list[Any]:
        # Some operations nest rows as {"item": [...]} or a single {"item": {...}}.
        if value in (None, ""):
            return []
        if isinstance(value, dict):
            value = value.get("item", [])
        if isinstance(value, dict):
            return [value]
        return value


class RegistryEnvelope(BaseModel):
    """
    Header/body envelope shared by both secondary registry operations.
    """

    model_config = ConfigDict(extra="ignore")

    header: EnvelopeHeader
    body: EnvelopeBody = Field(default_factory=EnvelopeBody)

    @model_validator(mode="before")
    @classmethod
    def _unwrap_response(cls, data: Any) -> Any:
        if isinstance(data, dict) and "response" in data and "header" not in data:
            return data["response"]
        return data

    @field_validator("body", mode="before")
    @classmethod
    def _default_body(cls, value: Any) -> Any:
        return value if value is not None else {}


def parse_envelope(payload: Any, success_codes: tuple[str, ...]) -> RegistryEnvelope:
    """
    Validate an envelope and its result code.

    Raises:
        MalformedResponseError: If the shape is unexpected or the code is not a success.
    """

    try:
        envelope = RegistryEnvelope.model_validate(payload)
    except ValidationError as exc:
        raise MalformedResponseError(f"Unexpected registry envelope: {exc.error_count()} error(s).") from exc

    if envelope.header.result_code not in success_codes:
        raise MalformedResponseError(
            f"Registry result code {envelope.header.result_code!r}: {envelope.header.result_message}"
        )
    return envelope


# ---------------------------------------------------------------------------
# Secondary registry: item shapes
# ---------------------------------------------------------------------------


class _RegistryItem(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return _as_text(value)


class DetailedPermitItem(_RegistryItem):
    """
    Detailed permit row; the operation returns UPPER_SNAKE field names.
    """

    item_code: str = Field(alias="ITEM_SEQ")
    product_name: str = Field(default="", alias="ITEM_NAME")
    manufacturer: str = Field(default="", alias="ENTP_NAME")
    dosage_form: str = Field(default="", alias="FORM_CODE_NAME")
    classification: str = Field(default="", alias="NEWDRUG_CLASS_NAME")
    cancel_date: str = Field(default="", alias="CANCEL_DATE")
    cancel_name: str = Field(default="", alias="CANCEL_NAME")
    main_ingredient: str = Field(default="", alias="MAIN_ITEM_INGR")
    ingredient_name: str = Field(default="", alias="ITEM_INGR_NAME")


class SimplifiedListItem(_RegistryItem):
    """
    Simplified product list row; the operation returns camelCase field names.
    """

    item_code: str = Field(alias="itemSeq")
    product_name: str = Field(default="", alias="itemName")
    manufacturer: str = Field(default="", alias="entpName")
    dosage_form: str = Field(default="", alias="formCodeName")
    classification: str = Field(default="", alias="newDrugClass")
    cancel_date: str = Field(default="", alias="cancelDate")
    material_name: str = Field(default="", alias="materialName")


def is_original_classification(classification: str, marker: str) -> bool:
    text = classification.strip()
    return text == "Y" or (bool(marker) and marker in text)


def _is_revoked(cancel_date: str, cancel_name: str = "") -> bool:
    return bool(cancel_date) or any(marker in cancel_name for marker in REVOKED_NAME_MARKERS)


def adapt_detailed_permit_item(item: DetailedPermitItem, original_marker: str) -> RegistryProduct:
    return RegistryProduct(
        item_code=item.item_code,
        product_name=item.product_name,
        manufacturer=item.manufacturer,
        dosage_form=item.dosage_form,
        classification=item.classification,
        is_original=is_original_classification(item.classification, original_marker),
        is_revoked=_is_revoked(item.cancel_date, item.cancel_name),
        ingredient_text=item.main_ingredient or item.ingredient_name,
    )


def adapt_simplified_list_item(item: SimplifiedListItem, original_marker: str) -> RegistryProduct:
    return RegistryProduct(
        item_code=item.item_code,
        product_name=item.product_name,
        manufacturer=item.manufacturer,
        dosage_form=item.dosage_form,
        classification=item.classification,
        is_original=is_original_classification(item.classification, original_marker),
        is_revoked=_is_revoked(item.cancel_date),
        ingredient_text=item.material_name,
    )
