"""Cross-ASP duplicate detection and merging.

The same title sold on several ASPs ends up as several products because
each ASP has its own normalized id. Two products are the same title when
their maker codes normalize equal, or when they share a release date and
a performer and their titles are near-identical.
"""

from collections import defaultdict
from dataclasses import dataclass
from itertools import combinations
from typing import Dict, List, Set

from loguru import logger
from rapidfuzz import fuzz

from ..catalog.parsing import normalize_performer_name
from ..catalog.product_ids import normalize_product_id_for_search
from ..storage.database import Database, refresh_denormalized
from ..storage.models import (
    Performer,
    PerformerAlias,
    Product,
    ProductPerformer,
    ProductRawDataLink,
    ProductTag,
)

TITLE_SIMILARITY_THRESHOLD = 90


@dataclass
class DuplicatePair:
    keep_id: int
    drop_id: int
    reason: str  # 'maker_code' or 'title'
    score: float = 100.0


def _age_key(product: Product):
    return (product.created_at, product.id)


def find_duplicate_products(db: Database) -> List[DuplicatePair]:
    """Find products that describe the same title.

    The oldest product of each group is kept. A product is proposed for
    dropping at most once.
    """
    pairs: List[DuplicatePair] = []
    dropped: Set[int] = set()

    with db.session() as session:
        products = session.query(Product).all()
        performers: Dict[int, Set[int]] = defaultdict(set)
        for link in session.query(ProductPerformer).all():
            performers[link.product_id].add(link.performer_id)

        by_code: Dict[str, List[Product]] = defaultdict(list)
        for product in products:
            if product.maker_product_code:
                by_code[normalize_product_id_for_search(product.maker_product_code)].append(product)

        for group in by_code.values():
            if len(group) < 2:
                continue
            keep, *rest = sorted(group, key=_age_key)
            for other in rest:
                if other.id not in dropped:
                    pairs.append(DuplicatePair(keep.id, other.id, "maker_code"))
                    dropped.add(other.id)

        by_date: Dict[object, List[Product]] = defaultdict(list)
        for product in products:
            if product.release_date and product.id not in dropped:
                by_date[product.release_date].append(product)

        for group in by_date.values():
            for a, b in combinations(sorted(group, key=_age_key), 2):
                if a.id in dropped or b.id in dropped:
                    continue
                if not performers[a.id] & performers[b.id]:
                    continue
                score = fuzz.token_sort_ratio(a.title, b.title)
                if score >= TITLE_SIMILARITY_THRESHOLD:
                    pairs.append(DuplicatePair(a.id, b.id, "title", score))
                    dropped.add(b.id)

    logger.info(f"Found {len(pairs)} duplicate product pairs")
    return pairs


def merge_products(db: Database, keep_id: int, drop_id: int) -> bool:
    """Move everything attached to drop_id onto keep_id, then delete drop_id.

    Returns:
        False when either product no longer exists
    """
    if keep_id == drop_id:
        return False

    with db.session() as session:
        keep = session.get(Product, keep_id)
        drop = session.get(Product, drop_id)
        if keep is None or drop is None:
            return False

        keep_sources = {source.asp_name: source for source in keep.sources}
        for source in list(drop.sources):
            existing = keep_sources.get(source.asp_name)
            if existing is None:
                source.product = keep
                keep_sources[source.asp_name] = source
                continue
            # Same ASP on both sides: keep the sale history, drop the listing
            has_active = any(sale.is_active for sale in existing.sales)
            for sale in list(source.sales):
                if has_active:
                    sale.is_active = False
                sale.source = existing

        image_urls = {image.image_url for image in keep.images}
        for image in list(drop.images):
            if image.image_url not in image_urls:
                image.product = keep
                image_urls.add(image.image_url)

        video_urls = {video.video_url for video in keep.videos}
        for video in list(drop.videos):
            if video.video_url not in video_urls:
                video.product = keep
                video_urls.add(video.video_url)

        performer_ids = {link.performer_id for link in keep.performer_links}
        for link in drop.performer_links:
            if link.performer_id not in performer_ids:
                session.add(ProductPerformer(product_id=keep.id, performer_id=link.performer_id))
                performer_ids.add(link.performer_id)

        tag_ids = {link.tag_id for link in keep.tag_links}
        for link in drop.tag_links:
            if link.tag_id not in tag_ids:
                session.add(ProductTag(product_id=keep.id, tag_id=link.tag_id))
                tag_ids.add(link.tag_id)

        kept_links = {
            (link.raw_data_table, link.raw_data_id)
            for link in session.query(ProductRawDataLink).filter(ProductRawDataLink.product_id == keep.id)
        }
        for link in session.query(ProductRawDataLink).filter(ProductRawDataLink.product_id == drop.id):
            if (link.raw_data_table, link.raw_data_id) in kept_links:
                session.delete(link)
            else:
                link.product_id = keep.id

        for column in ("description", "release_date", "duration", "maker_product_code", "rating", "review_count"):
            if getattr(keep, column) is None and getattr(drop, column) is not None:
                setattr(keep, column, getattr(drop, column))

        session.flush()
        session.delete(drop)
        session.flush()
        refresh_denormalized(session, keep)

    logger.info(f"Merged product {drop_id} into {keep_id}")
    return True


def reconcile_duplicates(db: Database, dry_run: bool = False) -> Dict[str, object]:
    """Find duplicate products and merge them unless dry_run is set."""
    pairs = find_duplicate_products(db)
    merged = 0

    if not dry_run:
        for pair in pairs:
            try:
                if merge_products(db, pair.keep_id, pair.drop_id):
                    merged += 1
            except Exception as e:
                logger.error(f"Failed to merge product {pair.drop_id} into {pair.keep_id}: {e}")

    logger.info(
        f"Reconcile {'(dry run) ' if dry_run else ''}finished: "
        f"{len(pairs)} candidates, {merged} merged"
    )
    return {
        "candidates": len(pairs),
        "merged": merged,
        "pairs": [
            {"keepId": p.keep_id, "dropId": p.drop_id, "reason": p.reason, "score": p.score}
            for p in pairs
        ],
    }


def merge_duplicate_performers(db: Database) -> int:
    """Merge performers whose names normalize equal into the lowest id.

    The merged names become aliases of the kept performer.

    Returns:
        Number of performers merged away
    """
    merged = 0

    with db.session() as session:
        groups: Dict[str, List[Performer]] = defaultdict(list)
        for performer in session.query(Performer).order_by(Performer.id):
            groups[normalize_performer_name(performer.name)].append(performer)

        touched_products: Set[int] = set()
        for group in groups.values():
            if len(group) < 2:
                continue
            keep, *rest = group
            aliases = {alias.alias_name for alias in keep.aliases}
            linked = {link.product_id for link in keep.product_links}

            for other in rest:
                links = session.query(ProductPerformer).filter(ProductPerformer.performer_id == other.id)
                for link in links.all():
                    touched_products.add(link.product_id)
                    if link.product_id not in linked:
                        session.add(ProductPerformer(product_id=link.product_id, performer_id=keep.id))
                        linked.add(link.product_id)
                links.delete()

                for alias in list(other.aliases):
                    if alias.alias_name not in aliases:
                        alias.performer = keep
                        alias.is_primary = False
                        aliases.add(alias.alias_name)

                if other.name not in aliases:
                    session.add(
                        PerformerAlias(performer_id=keep.id, alias_name=other.name, source="merge")
                    )
                    aliases.add(other.name)

                keep.name_kana = keep.name_kana or other.name_kana
                keep.profile_image_url = keep.profile_image_url or other.profile_image_url
                session.flush()
                session.delete(other)
                merged += 1

        session.flush()
        for product in session.query(Product).filter(Product.id.in_(touched_products)):
            refresh_denormalized(session, product)

    logger.info(f"Merged {merged} duplicate performers")
    return merged
