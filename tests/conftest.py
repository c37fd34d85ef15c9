import pathlib
import sys

import pytest

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

from engine.models import Ingredient, ItemMetadata, Recipe


class FakeItems:
    """In-memory item metadata provider."""

    def __init__(self):
        self.items = {}
        self.calls = []
        self.batch_calls = []
        self.fail_ids = set()
        self.fail_batch = False

    def add(self, item_id, name, recipe=None, level=20, yield_=1, job=8, **kwargs):
        crafts = kwargs.pop('crafts', None)
        if crafts is None and recipe is not None:
            crafts = [Recipe(
                id=str(item_id * 10),
                job_id=job,
                recipe_level=level,
                yield_=yield_,
                ingredients=[Ingredient(i, a, "") for i, a in recipe],
            )]
        item = ItemMetadata(id=item_id, name=name, crafts=crafts or [], **kwargs)
        self.items[item_id] = item
        return item

    def get_item(self, item_id):
        self.calls.append(item_id)
        if item_id in self.fail_ids:
            raise RuntimeError(f"boom {item_id}")
        return self.items.get(item_id)

    def get_items(self, item_ids):
        ids = list(item_ids)
        self.batch_calls.append(ids)
        if self.fail_batch:
            raise RuntimeError("batch down")
        return {i: self.items[i] for i in ids if i in self.items}


@pytest.fixture
def items():
    return FakeItems()
