"""Tests for image storage under the uploads directory."""

import pytest

from errors import ValidationError
from products.images import MAX_IMAGE_BYTES, ImageStore


class FakeUpload:
    """Minimal stand-in for an uploaded file."""

    def __init__(self, filename, content=b'\xff\xd8\xff\xe0'):
        self.filename = filename
        self.content = content

    async def read(self):
        return self.content


@pytest.fixture
def store(tmp_path):
    return ImageStore(str(tmp_path))


@pytest.mark.asyncio
async def test_save_writes_file(store, tmp_path):
    ref = await store.save(FakeUpload('Photo.JPG', b'abc'))

    assert ref.startswith('/uploads/')
    assert ref.endswith('.jpg')
    assert (tmp_path / ref.rsplit('/', 1)[1]).read_bytes() == b'abc'


@pytest.mark.asyncio
@pytest.mark.parametrize("filename", ['notes.txt', 'archive.tar.gz', 'noextension', None])
async def test_save_rejects_non_images(store, tmp_path, filename):
    with pytest.raises(ValidationError) as exc:
        await store.save(FakeUpload(filename))
    assert exc.value.message == "Only image files are allowed"
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_save_rejects_large_files(store):
    with pytest.raises(ValidationError) as exc:
        await store.save(FakeUpload('big.png', b'0' * (MAX_IMAGE_BYTES + 1)))
    assert exc.value.message == "Image exceeds the 5MB size limit"


@pytest.mark.asyncio
async def test_save_all_cleans_up_on_failure(store, tmp_path):
    """Test files saved before a bad upload are removed again."""
    with pytest.raises(ValidationError):
        await store.save_all([FakeUpload('a.png'), FakeUpload('b.webp'), FakeUpload('c.exe')])
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_delete(store, tmp_path):
    ref = await store.save(FakeUpload('a.gif'))
    await store.delete(ref)
    assert list(tmp_path.iterdir()) == []

    # Already removed, and a foreign reference, are both ignored
    await store.delete(ref)
    await store.delete('https://cdn.example/a.gif')


def test_path_for_stays_inside_uploads_dir(store, tmp_path):
    assert store.path_for('/uploads/../../etc/passwd') == tmp_path / 'passwd'
    assert store.path_for('/static/a.png') is None
    assert store.path_for('') is None
