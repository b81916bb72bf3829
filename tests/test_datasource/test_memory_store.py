"""
Tests for the in-memory document store and MutationSpec.
"""

import asyncio

import pytest

from folio.caching.errors import DocumentNotFoundError, RemoteError
from folio.datasource import InMemoryDocumentStore, MutationSpec, RemoteDataSource
from folio.datasource.base import FieldOpKind


class TestMutationSpec:
    """Tests for the fluent, immutable MutationSpec."""

    def test_builder_returns_new_spec(self):
        base = MutationSpec()
        spec = base.array_union("favoritesBook", "b1")

        assert len(base) == 0
        assert not base
        assert len(spec) == 1
        assert spec.ops[0].kind == FieldOpKind.ARRAY_UNION
        assert spec.ops[0].value == ("b1",)

    def test_chained_ops_keep_order(self):
        spec = MutationSpec().array_remove("startReadBook", "b1").array_union("finishedBook", "b1")
        assert [op.field for op in spec.ops] == ["startReadBook", "finishedBook"]

    def test_from_fields(self):
        spec = MutationSpec.from_fields({"title": "Dune", "pageCount": 412})
        assert {op.field for op in spec.ops} == {"title", "pageCount"}
        assert all(op.kind == FieldOpKind.SET for op in spec.ops)

    def test_empty_field_rejected(self):
        with pytest.raises(ValueError):
            MutationSpec().set("", 1)


class TestInMemoryDocumentStore:
    """Tests for InMemoryDocumentStore."""

    def test_satisfies_protocol(self):
        assert isinstance(InMemoryDocumentStore(), RemoteDataSource)

    @pytest.mark.asyncio
    async def test_fetch_one_returns_copy(self, remote):
        doc = await remote.fetch_one("users", "u1")
        doc["favoritesBook"].append("mutated")

        assert remote.document("users", "u1")["favoritesBook"] == ["b1"]

    @pytest.mark.asyncio
    async def test_fetch_one_missing(self, remote):
        with pytest.raises(DocumentNotFoundError) as exc_info:
            await remote.fetch_one("users", "nobody")
        assert exc_info.value.collection == "users"
        assert exc_info.value.doc_id == "nobody"

    @pytest.mark.asyncio
    async def test_fetch_all_pairs(self, remote):
        docs = dict(await remote.fetch_all("users"))
        assert set(docs) == {"u1", "u2"}
        assert await remote.fetch_all("nothing") == []

    @pytest.mark.asyncio
    async def test_array_union_skips_duplicates(self, remote):
        await remote.write("users", "u1", MutationSpec().array_union("favoritesBook", "b1", "b3"))
        assert remote.document("users", "u1")["favoritesBook"] == ["b1", "b3"]

    @pytest.mark.asyncio
    async def test_array_union_of_dicts(self, remote):
        entry = {"uid": "u1", "message": "hi", "timeStamp": "2024-01-01T00:00:00Z"}
        spec = MutationSpec().array_union("comments", entry)
        await remote.write("BookChats", "b1", spec)
        await remote.write("BookChats", "b1", spec)

        assert remote.document("BookChats", "b1")["comments"] == [entry]

    @pytest.mark.asyncio
    async def test_array_remove(self, remote):
        await remote.write("users", "u1", MutationSpec().array_remove("startReadBook", "b2"))
        assert remote.document("users", "u1")["startReadBook"] == []

    @pytest.mark.asyncio
    async def test_increment_missing_field(self, remote):
        await remote.write("users", "u2", MutationSpec().increment("revieCount", 1))
        await remote.write("users", "u2", MutationSpec().increment("revieCount", 2))
        assert remote.document("users", "u2")["revieCount"] == 3

    @pytest.mark.asyncio
    async def test_write_missing_document(self, remote):
        with pytest.raises(DocumentNotFoundError):
            await remote.write("users", "ghost", MutationSpec().set("email", "x"))
        assert remote.document("users", "ghost") is None

    @pytest.mark.asyncio
    async def test_write_with_create(self, remote):
        await remote.write("BookChats", "b9", MutationSpec().set("message", []), create=True)
        assert remote.document("BookChats", "b9") == {"message": []}

    @pytest.mark.asyncio
    async def test_add_generates_ids(self, remote):
        first = await remote.add("userBook", {"title": "A"})
        second = await remote.add("userBook", {"title": "B"})

        assert first != second
        assert remote.document("userBook", first) == {"title": "A"}
        assert await remote.exists("userBook", second) is True

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, remote):
        await remote.delete("userBook", "ub1")
        await remote.delete("userBook", "ub1")
        assert await remote.exists("userBook", "ub1") is False

    @pytest.mark.asyncio
    async def test_injected_failure(self, remote):
        remote.fail_next("fetch_all", "users")

        with pytest.raises(RemoteError):
            await remote.fetch_all("users")
        assert len(await remote.fetch_all("users")) == 2
        assert remote.calls["fetch_all"] == 2

    @pytest.mark.asyncio
    async def test_injected_failure_scoped_to_collection(self, remote):
        remote.fail_next("write", "users", error=RemoteError("quota"))

        await remote.write("books", "b1", MutationSpec().set("title", "Dune"))
        with pytest.raises(RemoteError, match="quota"):
            await remote.write("users", "u1", MutationSpec().set("email", "x"))

    @pytest.mark.asyncio
    async def test_latency(self):
        store = InMemoryDocumentStore({"users": {"u1": {}}}, latency_seconds=0.05)
        task = asyncio.create_task(store.fetch_one("users", "u1"))
        await asyncio.sleep(0)
        assert not task.done()
        assert await task == {}
