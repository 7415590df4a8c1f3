import json
import xml.etree.ElementTree as ET

import pytest

from shippingforecast.areas import PHANTOM_AREAS, STANDARD_AREAS
from shippingforecast.cli.sample import main


def output_lines(capsys):
    return [line for line in capsys.readouterr().out.splitlines() if line]


class TestSampleCLI:
    def test_plain_reports(self, capsys):
        assert main(["--count", "4", "--seed", "1", "--phantom-probability", "0"]) == 0
        lines = output_lines(capsys)
        assert len(lines) == 4
        assert all(line.split(".")[0] in STANDARD_AREAS for line in lines)

    def test_seed_is_reproducible(self, capsys):
        main(["--count", "3", "--seed", "9"])
        first = capsys.readouterr().out
        main(["--count", "3", "--seed", "9"])
        assert capsys.readouterr().out == first

    def test_json(self, capsys):
        main(["--count", "2", "--json", "--seed", "2", "--phantom-probability", "1"])
        rows = [json.loads(line) for line in output_lines(capsys)]
        assert [r["kind"] for r in rows] == ["phantom", "phantom"]
        assert all(r["area"] in PHANTOM_AREAS for r in rows)
        assert rows[0]["text"].startswith(rows[0]["area"])

    def test_ssml(self, capsys):
        main(["--count", "1", "--ssml", "--seed", "3"])
        (line,) = output_lines(capsys)
        assert ET.fromstring(line).tag == "speak"

    def test_broadcast(self, capsys):
        main(["--broadcast", "--count", "5", "--seed", "4", "--phantom-probability", "0"])
        out = capsys.readouterr().out
        assert "shipping forecast" in out.lower()

    @pytest.mark.parametrize("argv", [["--count", "0"], ["--phantom-probability", "1.5"]])
    def test_rejects_bad_arguments(self, argv):
        with pytest.raises(SystemExit):
            main(argv)
