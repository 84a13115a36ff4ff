from datetime import date

import pytest

from avcatalog.storage import Database
from avcatalog.storage.models import ParsedProduct, SaleInfo


def build_parsed(original_id="abc-0001", prefix="duga", **overrides):
    values = {
        "original_id": original_id,
        "normalized_product_id": f"{prefix}-{original_id}",
        "title": "テスト作品タイトル",
        "description": "テスト用の説明文",
        "release_date": date(2025, 1, 10),
        "duration": 120,
        "package_url": f"https://img.example.test/{original_id}/package.jpg",
        "sample_images": [
            f"https://img.example.test/{original_id}/sample1.jpg",
            f"https://img.example.test/{original_id}/sample2.jpg",
        ],
        "affiliate_url": f"https://aff.example.test/{prefix}/{original_id}",
        "price": 2980,
        "performers": ["山田花子"],
        "categories": ["企画"],
    }
    values.update(overrides)
    return ParsedProduct(**values)


def build_sale(regular_price=2980, sale_price=1980, **overrides):
    return SaleInfo(regular_price=regular_price, sale_price=sale_price, **overrides)


@pytest.fixture
def db():
    return Database("sqlite:///:memory:")
