"""Tests for remote folder chain resolution."""

import pytest

from gdrive_sync.core import RemoteDirectoryResolver, split_remote_directory


class TestSplitRemoteDirectory:

    @pytest.mark.parametrize("path,expected", [
        ("a/b/c", ["a", "b", "c"]),
        ("/a/b/", ["a", "b"]),
        ("a//b", ["a", "b"]),
        ("./a", ["a"]),
        ("", []),
        (".", []),
    ])
    def test_split(self, path, expected):
        assert split_remote_directory(path) == expected


class TestRemoteDirectoryResolver:

    @pytest.mark.asyncio
    async def test_creates_every_missing_segment_linked_to_its_parent(self, fake_drive, status_log):
        resolver = RemoteDirectoryResolver(fake_drive, log=status_log)

        chain = await resolver.resolve_chain("a/b/c")

        assert len(chain) == 3
        folders = {f.file_id: f for f in fake_drive.folders()}
        assert [folders[i].name for i in chain] == ["a", "b", "c"]
        assert folders[chain[0]].parents == []
        assert folders[chain[1]].parents == [chain[0]]
        assert folders[chain[2]].parents == [chain[1]]
        assert status_log.messages == [
            "Create partial directory a",
            "Create partial directory b",
            "Create partial directory c",
        ]

    @pytest.mark.asyncio
    async def test_twice_returns_same_id_without_duplicates(self, fake_drive):
        resolver = RemoteDirectoryResolver(fake_drive)

        first = await resolver.ensure_directory_chain("a/b/c")
        second = await resolver.ensure_directory_chain("a/b/c")

        assert first == second
        assert len(fake_drive.folders()) == 3
        assert [c[0] for c in fake_drive.mutating_calls] == ["create_folder"] * 3

    @pytest.mark.asyncio
    async def test_reuses_existing_prefix(self, fake_drive):
        a = fake_drive.add_folder("a")
        b = fake_drive.add_folder("b", parent_id=a.file_id)

        deepest = await RemoteDirectoryResolver(fake_drive).ensure_directory_chain("a/b/c")

        assert fake_drive.mutating_calls == [("create_folder", "c", b.file_id)]
        [c] = [f for f in fake_drive.folders() if f.name == "c"]
        assert deepest == c.file_id

    @pytest.mark.asyncio
    async def test_same_name_under_other_parent_is_not_reused(self, fake_drive):
        a = fake_drive.add_folder("a")
        elsewhere = fake_drive.add_folder("b", parent_id="someone_else")

        chain = await RemoteDirectoryResolver(fake_drive).resolve_chain("a/b")

        assert chain[0] == a.file_id
        assert chain[1] != elsewhere.file_id
        assert fake_drive.mutating_calls == [("create_folder", "b", a.file_id)]

    @pytest.mark.asyncio
    async def test_first_segment_matches_by_name_only(self, fake_drive):
        nested = fake_drive.add_folder("a", parent_id="some_parent")

        chain = await RemoteDirectoryResolver(fake_drive).resolve_chain("a")

        assert chain == [nested.file_id]
        assert fake_drive.mutating_calls == []

    @pytest.mark.asyncio
    async def test_lookups_thread_parent_ids_in_order(self, fake_drive):
        await RemoteDirectoryResolver(fake_drive).resolve_chain("x/y")

        lookups = [c for c in fake_drive.calls if c[0] == "find_files"]
        assert lookups[0] == ("find_files", "x", None)
        x_id = fake_drive.folders()[0].file_id
        assert lookups[1] == ("find_files", "y", x_id)

    @pytest.mark.asyncio
    async def test_empty_path_is_drive_root(self, fake_drive):
        assert await RemoteDirectoryResolver(fake_drive).ensure_directory_chain("") is None
        assert fake_drive.calls == []
