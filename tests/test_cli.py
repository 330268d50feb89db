"""
Tests for presetdig.cli
=======================
Run with:  pytest tests/test_cli.py -v
"""

from __future__ import annotations

import gzip

from click.testing import CliRunner

from presetdig.cli import extract_presets_cmd, find_magic_cmd

LIVE_SET = (
    b"<Ableton><LiveSet><Tracks>"
    b'<MidiTrack><Name><EffectiveName Value="Keys" /></Name>'
    b'<PluginDevice><PlugName Value="Dexed" /><Buffer>4363 6E4B</Buffer></PluginDevice>'
    b"</MidiTrack></Tracks></LiveSet></Ableton>"
)


# ---------------------------------------------------------------------------
# extract-presets
# ---------------------------------------------------------------------------

class TestExtractPresetsCommand:
    def test_gzipped_set_default_output_dir(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "song.als").write_bytes(gzip.compress(LIVE_SET))
        result = CliRunner().invoke(extract_presets_cmd, ["song.als"])
        assert result.exit_code == 0, result.output
        written = tmp_path / "song.presets" / "Keys.Dexed.bin"
        assert written.read_bytes() == b"CcnK"
        assert "Keys.Dexed.bin" in result.stdout
        assert "XPath: /Ableton/LiveSet/Tracks/MidiTrack/PluginDevice/Buffer" in result.stdout
        assert result.stdout.rstrip().endswith("Done.")

    def test_explicit_output_dir(self, tmp_path):
        src = tmp_path / "song.xml"
        src.write_bytes(LIVE_SET)
        out = tmp_path / "presets"
        result = CliRunner().invoke(extract_presets_cmd, [str(src), str(out)])
        assert result.exit_code == 0, result.output
        assert (out / "Keys.Dexed.bin").exists()

    def test_undecodable_input_is_fatal(self, tmp_path):
        src = tmp_path / "broken.als"
        src.write_bytes(b"\x00garbage")
        result = CliRunner().invoke(extract_presets_cmd, [str(src), str(tmp_path / "out")])
        assert result.exit_code == 1
        assert "Failed to decompress" in result.output

    def test_missing_input_is_rejected(self, tmp_path):
        result = CliRunner().invoke(extract_presets_cmd, [str(tmp_path / "nope.als")])
        assert result.exit_code == 2


# ---------------------------------------------------------------------------
# find-magic
# ---------------------------------------------------------------------------

class TestFindMagicCommand:
    def make_samples(self, root):
        for i in range(3):
            (root / f"s{i}.foo").write_bytes(bytes.fromhex("deadbeef") + bytes([i]) * 60)

    def test_lists_rules(self, tmp_path):
        self.make_samples(tmp_path)
        result = CliRunner().invoke(find_magic_cmd, ["-n", "4", str(tmp_path)])
        assert result.exit_code == 0, result.output
        assert "# 3 files, 100% common nibbles" in result.stdout
        assert 're.compile(r"^deadbeef")' in result.stdout
        assert "# No collisions detected between patterns." in result.stdout

    def test_export_json(self, tmp_path):
        samples = tmp_path / "samples"
        samples.mkdir()
        self.make_samples(samples)
        target = tmp_path / "rules.json"
        result = CliRunner().invoke(find_magic_cmd, ["-n", "4", "--export", str(target), str(samples)])
        assert result.exit_code == 0, result.output
        assert '"^deadbeef"' in target.read_text(encoding="utf-8")

    def test_collisions_reported(self, tmp_path):
        # .gen mines to "^de", which also accepts the .spc headers
        (tmp_path / "g0.gen").write_bytes(b"\xde\x00")
        (tmp_path / "g1.gen").write_bytes(b"\xde\xff")
        (tmp_path / "s0.spc").write_bytes(b"\xde\xad\x00")
        (tmp_path / "s1.spc").write_bytes(b"\xde\xad\x01")
        result = CliRunner().invoke(find_magic_cmd, ["-n", "2", str(tmp_path)])
        assert result.exit_code == 0, result.output
        assert "No collisions" not in result.stdout

    def test_unknown_flag_rejected(self, tmp_path):
        result = CliRunner().invoke(find_magic_cmd, ["-x", str(tmp_path)])
        assert result.exit_code == 2

    def test_non_positive_byte_count_rejected(self, tmp_path):
        result = CliRunner().invoke(find_magic_cmd, ["-n", "0", str(tmp_path)])
        assert result.exit_code == 2
