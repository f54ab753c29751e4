import io
from unittest.mock import patch

import pytest
from fastapi import UploadFile

from app.services.exceptions import RequestValidationFailed
from app.services.file_storage import FileStorage


def _upload(content: bytes, filename: str = "policy.pdf") -> UploadFile:
    return UploadFile(file=io.BytesIO(content), filename=filename)


class TestFileStorage:
    def test_unique_path_shape(self, tmp_path) -> None:
        storage = FileStorage(upload_dir=str(tmp_path))
        first = storage.unique_path("Policy.PDF")
        second = storage.unique_path("Policy.PDF")
        assert first != second
        assert first.parent == tmp_path
        assert first.suffix == ".pdf"
        timestamp, short_id = first.stem.split("-")
        assert timestamp.isdigit()
        assert len(short_id) == 8

    @pytest.mark.asyncio
    async def test_file_exists_during_block_and_removed_after(self, tmp_path) -> None:
        storage = FileStorage(upload_dir=str(tmp_path / "uploads"))
        async with storage.stage_upload(_upload(b"%PDF-1.4 data")) as path:
            assert path.read_bytes() == b"%PDF-1.4 data"
        assert not path.exists()

    @pytest.mark.asyncio
    async def test_file_removed_when_block_raises(self, tmp_path) -> None:
        storage = FileStorage(upload_dir=str(tmp_path))
        staged = None
        with pytest.raises(RuntimeError):
            async with storage.stage_upload(_upload(b"%PDF")) as path:
                staged = path
                raise RuntimeError("pipeline failed")
        assert staged is not None
        assert not staged.exists()

    @pytest.mark.asyncio
    async def test_oversized_upload_rejected_and_removed(self, tmp_path) -> None:
        storage = FileStorage(upload_dir=str(tmp_path), max_file_size=10)
        with pytest.raises(RequestValidationFailed):
            async with storage.stage_upload(_upload(b"x" * 11)):
                pass
        assert list(tmp_path.iterdir()) == []

    def test_delete_failure_is_logged_not_raised(self, tmp_path) -> None:
        storage = FileStorage(upload_dir=str(tmp_path))
        path = tmp_path / "locked.pdf"
        with patch("pathlib.Path.unlink", side_effect=PermissionError("locked")):
            assert storage.delete(path) is False

    def test_delete_missing_file_is_fine(self, tmp_path) -> None:
        storage = FileStorage(upload_dir=str(tmp_path))
        assert storage.delete(tmp_path / "never-existed.pdf") is True
