"""Tests for filesystem identity and shared reads."""

import os

import pytest

from csvtail.files import FileIdentity, identity_of_fd, probe_identity, read_text_shared, strip_bom
from tests.conftest import write_bytes


class TestIdentity:
    def test_probe_matches_stat(self, tmp_path):
        p = write_bytes(tmp_path / "a.csv", b"x")
        st = os.stat(p)
        assert probe_identity(p) == FileIdentity(volume=st.st_dev, file_index=st.st_ino)

    def test_probe_missing_path_returns_none(self, tmp_path):
        assert probe_identity(tmp_path / "missing.csv") is None

    def test_fd_and_path_agree(self, tmp_path):
        p = write_bytes(tmp_path / "a.csv", b"x")
        with p.open("rb") as fh:
            assert identity_of_fd(fh.fileno()) == probe_identity(p)

    def test_recreated_file_has_new_identity(self, tmp_path):
        p = write_bytes(tmp_path / "a.csv", b"x")
        before = probe_identity(p)
        os.rename(p, tmp_path / "a.old")
        write_bytes(p, b"y")
        assert probe_identity(p) != before

    def test_zero_inode_means_no_identity(self, tmp_path, monkeypatch):
        p = write_bytes(tmp_path / "a.csv", b"x")
        real = os.stat(p)
        fake = os.stat_result((real.st_mode, 0, *tuple(real)[2:]))
        monkeypatch.setattr(os, "stat", lambda *_a, **_k: fake)
        assert probe_identity(p) is None


class TestReadTextShared:
    def test_reads_whole_file(self, tmp_path):
        p = write_bytes(tmp_path / "a.csv", b"a,b\n1,2\n")
        assert read_text_shared(p) == "a,b\n1,2\n"

    def test_strips_bom(self, tmp_path):
        p = write_bytes(tmp_path / "a.csv", b"\xef\xbb\xbfa,b\n")
        assert read_text_shared(p) == "a,b\n"

    def test_large_file_read_in_chunks(self, tmp_path):
        data = b"0123456789\n" * 20_000
        p = write_bytes(tmp_path / "a.csv", data)
        assert read_text_shared(p) == data.decode()

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(OSError):
            read_text_shared(tmp_path / "missing.csv")

    def test_invalid_utf8_replaced(self, tmp_path):
        p = write_bytes(tmp_path / "a.csv", b"a\xff\n")
        assert read_text_shared(p) == "a\ufffd\n"


class TestStripBom:
    def test_only_leading_bom_removed(self):
        assert strip_bom(b"\xef\xbb\xbfx\xef\xbb\xbf") == b"x\xef\xbb\xbf"

    def test_no_bom_unchanged(self):
        assert strip_bom(b"abc") == b"abc"
