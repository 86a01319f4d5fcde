import tarfile
import zipfile

import pytest

from dropshare.archive import ArtifactRef, Encoding, TransferPreparer, archive_name
from dropshare.errors import ConfigurationError, EmptyArchiveError


@pytest.fixture
def preparer(tmp_path):
    work = tmp_path / 'work'
    work.mkdir()
    return TransferPreparer(work_dir=work)


def test_single_file_is_served_directly(tmp_path, preparer):
    report = tmp_path / 'report.txt'
    report.write_bytes(b'hello world!')

    artifact = preparer.prepare([report])

    assert artifact.path == report
    assert artifact.is_temporary is False
    assert artifact.name == 'report.txt'
    assert artifact.size == 12
    assert list(preparer.work_dir.iterdir()) == []


def test_single_directory_is_archived(tmp_path, preparer):
    (tmp_path / 'd').mkdir()
    (tmp_path / 'd' / 'f.txt').write_text('f')

    artifact = preparer.prepare([tmp_path / 'd'])

    assert artifact.is_temporary is True
    assert artifact.path == preparer.work_dir / 'dropshare.tar.gz'
    with tarfile.open(artifact.path) as tar:
        assert tar.getnames() == ['d-0', 'd-0/f.txt']


def test_multiple_files_are_archived_as_zip(tmp_path, preparer):
    for name in ('one.txt', 'two.txt'):
        (tmp_path / name).write_text(name)

    artifact = preparer.prepare([tmp_path / 'one.txt', tmp_path / 'two.txt'], Encoding.ZIP)

    assert artifact.name == 'dropshare.zip'
    with zipfile.ZipFile(artifact.path) as zf:
        assert zf.namelist() == ['one.txt', 'two.txt']


def test_no_paths_is_a_configuration_error(preparer):
    with pytest.raises(ConfigurationError, match='No paths'):
        preparer.prepare([])


def test_single_invalid_path_is_a_configuration_error(tmp_path, preparer):
    with pytest.raises(ConfigurationError, match='not a valid path'):
        preparer.prepare([tmp_path / 'missing'])

    assert not (preparer.work_dir / archive_name(Encoding.TAR_GZ)).exists()


def test_all_invalid_paths_leave_no_archive(tmp_path, preparer):
    with pytest.raises(EmptyArchiveError):
        preparer.prepare([tmp_path / 'missing', tmp_path / 'gone'])

    assert list(preparer.work_dir.iterdir()) == []


def test_cleanup_removes_temporary_artifact_once(tmp_path, caplog):
    path = tmp_path / 'dropshare.tar.gz'
    path.write_bytes(b'archive')
    artifact = ArtifactRef(path=path, is_temporary=True)

    with caplog.at_level('INFO'):
        with artifact:
            assert path.exists()
        artifact.cleanup()

    assert not path.exists()
    assert caplog.text.count('Removed temporary archive') == 1


def test_cleanup_leaves_supplied_file_alone(tmp_path):
    path = tmp_path / 'report.txt'
    path.write_bytes(b'keep me')

    with ArtifactRef(path=path, is_temporary=False):
        pass

    assert path.read_bytes() == b'keep me'


def test_cleanup_runs_when_exchange_fails(tmp_path):
    path = tmp_path / 'dropshare.zip'
    path.write_bytes(b'archive')

    with pytest.raises(RuntimeError):
        with ArtifactRef(path=path, is_temporary=True):
            raise RuntimeError("peer vanished")

    assert not path.exists()
