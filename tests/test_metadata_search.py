import asyncio

from conftest import insert_metadata
from dal.image_dal import ImageDAL
from dal.metadata_dal import MetadataDAL
from models.image_asset import ImageAsset
from services.metadata_search import MetadataSearch, row_matches


async def _asset(db, owner, name, thumbnail_path=None):
    path = f"{owner}/{name}"
    return await ImageDAL(db).create_image(
        ImageAsset(
            id=None,
            owner_id=owner,
            filename=name,
            original_path=path,
            thumbnail_path=thumbnail_path if thumbnail_path is not None else path,
        )
    )


def _search(db, blob_store):
    return MetadataSearch(MetadataDAL(db), ImageDAL(db), blob_store)


class ExplodingMetadataDAL:
    async def list_recent(self, owner_id=None, limit=1000):
        raise RuntimeError("connection refused")


def test_sunset_matches_description_and_tags_case_insensitively(db, blob_store):
    async def scenario():
        a = await _asset(db, "u1", "1-a.jpg")
        b = await _asset(db, "u1", "2-b.jpg")
        c = await _asset(db, "u1", "3-c.jpg")
        await insert_metadata(db, a.id, "u1", "a sunset over water", "[]", "[]", "2024-01-01T00:00:01")
        await insert_metadata(db, b.id, "u1", "a day at the shore", '["Sunset","beach"]', "[]", "2024-01-01T00:00:02")
        await insert_metadata(db, c.id, "u1", "a city street", '["cars"]', '["#333333"]', "2024-01-01T00:00:03")
        return a, b, c, await _search(db, blob_store).search("  SUNSET ")

    a, b, c, result = asyncio.run(scenario())

    assert result["success"] is True
    ids = [img["id"] for img in result["images"]]
    assert ids == [b.id, a.id]
    assert c.id not in ids


def test_results_follow_descending_creation_order(db, blob_store):
    async def scenario():
        assets = [await _asset(db, "u1", f"{i}-x.jpg") for i in range(3)]
        stamps = ["2024-03-01T10:00:00", "2024-03-03T10:00:00", "2024-03-02T10:00:00"]
        for asset, stamp in zip(assets, stamps):
            await insert_metadata(db, asset.id, "u1", "mountain lake", "[]", "[]", stamp)
        return assets, await _search(db, blob_store).search("lake")

    assets, result = asyncio.run(scenario())

    assert [img["id"] for img in result["images"]] == [assets[1].id, assets[2].id, assets[0].id]


def test_colors_match_after_description_and_tags(db, blob_store):
    async def scenario():
        asset = await _asset(db, "u1", "1-red.jpg")
        await insert_metadata(db, asset.id, "u1", "abstract", "cat, dog", "#FF0000, #00ff00", "2024-01-01")
        return await _search(db, blob_store).search("#00FF00")

    result = asyncio.run(scenario())

    assert len(result["images"]) == 1


def test_json_text_tags_behave_like_native_list():
    stored_as_text = {"description": "", "tags": '["cat","blue"]', "colors": None}
    native = {"description": "", "tags": ["cat", "blue"], "colors": None}

    for needle in ("cat", "blu", "dog"):
        assert row_matches(stored_as_text, needle) == row_matches(native, needle)


def test_empty_query_short_circuits(db, blob_store):
    search = MetadataSearch(ExplodingMetadataDAL(), ImageDAL(db), blob_store)

    assert asyncio.run(search.search("")) == {"success": True, "images": []}
    assert asyncio.run(search.search("   ")) == {"success": True, "images": []}


def test_backend_failure_is_reported_not_raised(db, blob_store):
    search = MetadataSearch(ExplodingMetadataDAL(), ImageDAL(db), blob_store)

    result = asyncio.run(search.search("cat"))

    assert result == {"success": False, "error": "connection refused"}


def test_owner_scope_and_display_url(db, blob_store):
    async def scenario():
        mine = await _asset(db, "u1", "1-cat.jpg", thumbnail_path="thumbnails/u1/1-cat.jpg")
        theirs = await _asset(db, "u2", "2-cat.jpg")
        await insert_metadata(db, mine.id, "u1", "a cat", "[]", "[]", "2024-01-01")
        await insert_metadata(db, theirs.id, "u2", "another cat", "[]", "[]", "2024-01-02")
        return mine, await _search(db, blob_store).search("cat", owner_id="u1")

    mine, result = asyncio.run(scenario())

    assert [img["id"] for img in result["images"]] == [mine.id]
    image = result["images"][0]
    assert image["public_url"] == "http://testserver/storage/thumbnails/u1/1-cat.jpg"
    assert image["tags"] == []


def test_no_matches_returns_empty_list(db, blob_store):
    async def scenario():
        asset = await _asset(db, "u1", "1-a.jpg")
        await insert_metadata(db, asset.id, "u1", "forest", '["trees"]', '["#00AA00"]', "2024-01-01")
        return await _search(db, blob_store).search("ocean")

    assert asyncio.run(scenario()) == {"success": True, "images": []}


def test_missing_thumbnail_path_still_points_at_public_bucket(db, blob_store):
    async def scenario():
        asset = await _asset(db, "u1", "2-dog.jpg", thumbnail_path="")
        await insert_metadata(db, asset.id, "u1", "a dog", "[]", "[]", "2024-01-01")
        return await _search(db, blob_store).search("dog")

    image = asyncio.run(scenario())["images"][0]

    assert image["public_url"] == "http://testserver/storage/thumbnails/u1/2-dog.jpg"
