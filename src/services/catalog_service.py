"""Catalog reconciliation gate.

Resolves parsed line items against the tenant's product list before they
are committed to an order. A tenant with no products gets no enforcement:
reconcile() returns None and every item passes through as text_only.

Matching, per item:

1. Exact: the item identity equals a product canonical or display name.
2. Fuzzy: token overlap with a product's canonical/display name. Queries of
   two or more tokens need multi_word_min_overlap shared tokens, single
   tokens need single_word_min_overlap. The best-scoring products must all
   share one canonical; a tie across different products is left unmatched.
3. Otherwise the item is unmatched.

A matched canonical with two or more catalog variants, where neither the
item nor the message names one of them, is flagged needs_clarify and keeps
product_id unset.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.orm import Session

from src.db.models import Product
from src.orchestrator.models.order import LineItem
from src.orchestrator.nl_engine.text_shape import normalize_text, tokenize

logger = logging.getLogger(__name__)

DEFAULT_SINGLE_WORD_MIN_OVERLAP = 1
DEFAULT_MULTI_WORD_MIN_OVERLAP = 2


@dataclass
class ReconcileResult:
    """Items split by whether the catalog recognised them."""

    matched: list[LineItem] = field(default_factory=list)
    unmatched: list[LineItem] = field(default_factory=list)

    @property
    def all_unmatched(self) -> bool:
        return bool(self.unmatched) and not self.matched

    @property
    def needs_clarify(self) -> list[int]:
        """Indexes into matched of items awaiting a variant choice."""
        return [i for i, item in enumerate(self.matched) if item.needs_clarify]


def list_products(db: Session, tenant_id: str) -> list[Product]:
    """All catalog rows for a tenant, oldest first."""
    return list(
        db.execute(
            select(Product)
            .where(Product.tenant_id == tenant_id)
            .order_by(Product.created_at, Product.id)
        ).scalars()
    )


def add_product(
    db: Session,
    tenant_id: str,
    canonical: str,
    display_name: str | None = None,
    variant: str | None = None,
    unit: str | None = None,
) -> Product:
    """Insert a catalog row. Does not commit."""
    product = Product(
        tenant_id=tenant_id,
        canonical=canonical.strip(),
        display_name=display_name,
        variant=variant,
        unit=unit,
    )
    db.add(product)
    db.flush()
    logger.info("Added product %s (variant=%s) for tenant %s", product.canonical, variant, tenant_id)
    return product


def catalog_hint(products: list[Product]) -> list[str]:
    """Distinct product names, used to steer extraction."""
    names: list[str] = []
    for p in products:
        for name in (p.canonical, p.display_name):
            if name and name not in names:
                names.append(name)
    return names


def _product_tokens(product: Product) -> set[str]:
    return set(tokenize(product.canonical)) | set(tokenize(product.display_name))


def _exact_group(query: str, products: list[Product]) -> list[Product]:
    for p in products:
        if normalize_text(p.canonical) == query or (
            p.display_name and normalize_text(p.display_name) == query
        ):
            canonical = normalize_text(p.canonical)
            return [q for q in products if normalize_text(q.canonical) == canonical]
    return []


def _fuzzy_group(
    query: str,
    products: list[Product],
    single_word_min_overlap: int,
    multi_word_min_overlap: int,
) -> list[Product]:
    query_tokens = set(tokenize(query))
    if not query_tokens:
        return []
    threshold = multi_word_min_overlap if len(query_tokens) >= 2 else single_word_min_overlap

    scored = [(len(query_tokens & _product_tokens(p)), p) for p in products]
    best = max((s for s, _ in scored), default=0)
    if best == 0 or best < threshold:
        return []

    top = [p for s, p in scored if s == best]
    canonicals = {normalize_text(p.canonical) for p in top}
    if len(canonicals) > 1:
        logger.debug("Fuzzy catalog match for %r tied across %d products", query, len(canonicals))
        return []
    canonical = canonicals.pop()
    return [p for p in products if normalize_text(p.canonical) == canonical]


def find_product_group(
    query: str,
    products: list[Product],
    single_word_min_overlap: int = DEFAULT_SINGLE_WORD_MIN_OVERLAP,
    multi_word_min_overlap: int = DEFAULT_MULTI_WORD_MIN_OVERLAP,
) -> tuple[str, list[Product]]:
    """Resolve a query to all catalog rows sharing one canonical.

    Returns:
        (match_type, products). match_type is text_only with an empty list
        when nothing qualifies.
    """
    q = normalize_text(query)
    group = _exact_group(q, products)
    if group:
        return "catalog_exact", group
    group = _fuzzy_group(q, products, single_word_min_overlap, multi_word_min_overlap)
    if group:
        return "catalog_fuzzy", group
    return "text_only", []


def distinct_variants(group: list[Product]) -> list[str]:
    variants: list[str] = []
    for p in group:
        if p.variant and p.variant not in variants:
            variants.append(p.variant)
    return variants


def mentioned_variant(text: str | None, variants: list[str]) -> str | None:
    """The variant named in the text, preferring the longest mention."""
    low = f" {' '.join(tokenize(text))} "
    for variant in sorted(variants, key=len, reverse=True):
        needle = " ".join(tokenize(variant))
        if needle and f" {needle} " in low:
            return variant
    return None


def resolve_item(item: LineItem, group: list[Product], variant: str | None) -> LineItem:
    """Bind an item to the product row for a variant (or the only row)."""
    product = next((p for p in group if p.variant == variant), group[0])
    return item.model_copy(update={
        "canonical": product.canonical,
        "product_id": product.id,
        "variant": product.variant or item.variant,
        "unit": item.unit or product.unit,
        "needs_clarify": False,
        "variant_options": [],
    })


def reconcile(
    items: list[LineItem],
    products: list[Product],
    text: str = "",
    single_word_min_overlap: int = DEFAULT_SINGLE_WORD_MIN_OVERLAP,
    multi_word_min_overlap: int = DEFAULT_MULTI_WORD_MIN_OVERLAP,
) -> ReconcileResult | None:
    """Match parsed items against the tenant catalog.

    Args:
        items: Items from the order parser, in message order.
        products: Tenant catalog rows.
        text: Full message text, searched for variant terms.
        single_word_min_overlap: Shared tokens needed for a one-word query.
        multi_word_min_overlap: Shared tokens needed for longer queries.

    Returns:
        ReconcileResult, or None when the tenant has no catalog.
    """
    if not products:
        return None

    result = ReconcileResult()
    for item in items:
        match_type, group = find_product_group(
            item.canonical or item.name,
            products,
            single_word_min_overlap,
            multi_word_min_overlap,
        )
        if not group:
            result.unmatched.append(item.model_copy(update={"match_type": "text_only"}))
            continue

        variants = distinct_variants(group)
        chosen = None
        if item.variant and item.variant in variants:
            chosen = item.variant
        else:
            chosen = mentioned_variant(item.name, variants) or mentioned_variant(text, variants)

        if len(variants) >= 2 and chosen is None:
            result.matched.append(item.model_copy(update={
                "canonical": group[0].canonical,
                "match_type": match_type,
                "product_id": None,
                "needs_clarify": True,
                "variant_options": variants,
            }))
            continue

        resolved = resolve_item(item, group, chosen)
        result.matched.append(resolved.model_copy(update={"match_type": match_type}))

    if result.unmatched:
        logger.info(
            "Catalog gate: %d matched, %d unmatched (%s)",
            len(result.matched),
            len(result.unmatched),
            ", ".join(i.name for i in result.unmatched),
        )
    return result


def lookup(
    products: list[Product],
    query: str | None,
    single_word_min_overlap: int = DEFAULT_SINGLE_WORD_MIN_OVERLAP,
    multi_word_min_overlap: int = DEFAULT_MULTI_WORD_MIN_OVERLAP,
) -> Product | None:
    """First product row for a free-text name, used by inquiries."""
    if not query:
        return None
    _, group = find_product_group(query, products, single_word_min_overlap, multi_word_min_overlap)
    return group[0] if group else None
