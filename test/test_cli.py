from print_bridge import cli
from print_bridge.cli import main

from io import BytesIO

from PIL import Image


def test_encode_image(tmp_path, capsys):
    src = tmp_path / "logo.png"
    Image.new("RGB", (16, 4), (0, 0, 0)).save(src)
    out = tmp_path / "logo.raw"

    assert main(["encode", str(src), "-o", str(out), "--width", "16"]) == 0

    data = out.read_bytes()
    assert data == (
        b"\x1b\x40"
        b"\x1d\x76\x30\x00\x02\x00\x04\x00"
        + b"\xff" * 8
        + b"\x1b\x64\x03\x1d\x56\x00"
    )
    assert "Wrote" in capsys.readouterr().out


def test_encode_bad_file(tmp_path, capsys):
    src = tmp_path / "broken.png"
    src.write_bytes(b"not an image")
    assert main(["encode", str(src), "-o", str(tmp_path / "x.raw")]) == 1
    assert "Error" in capsys.readouterr().err
    assert not (tmp_path / "x.raw").exists()


def test_printers(tmp_path, capsys):
    db = str(tmp_path / "printers.db")
    assert main(["--db", db, "printers", "add", "Counter", "192.168.1.250"]) == 0
    assert main(["--db", db, "printers", "add", "Kitchen", "192.168.1.251", "--port", "9101"]) == 0
    assert main(["--db", db, "printers", "activate", "2"]) == 0
    capsys.readouterr()

    assert main(["--db", db, "printers", "ls"]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines[0].startswith("    1 | Counter")
    assert lines[1].startswith("*   2 | Kitchen")

    assert main(["--db", db, "printers", "activate", "7"]) == 1


def test_text_goes_to_active_printer(tmp_path, monkeypatch):
    db = str(tmp_path / "printers.db")
    main(["--db", db, "printers", "add", "Counter", "192.168.1.250", "--port", "9101"])

    sent = []

    async def fake_send(self, timeout=10.0, settle=0.5):
        sent.append((self.host, self.port, self.payload))
        return len(self.payload)

    monkeypatch.setattr(cli.PrintJob, "send", fake_send)

    assert main(["--db", db, "text", "Xin chào", "--encoding", "no-accents"]) == 0
    (host, port, payload), = sent
    assert (host, port) == ("192.168.1.250", 9101)
    assert b"Xin chao" in payload


def test_print_without_printer(tmp_path, capsys):
    buf = BytesIO()
    Image.new("L", (8, 8), 0).save(buf, format="PNG")
    src = tmp_path / "a.png"
    src.write_bytes(buf.getvalue())

    assert main(["--db", str(tmp_path / "empty.db"), "print", str(src)]) == 1
    assert "No active printer" in capsys.readouterr().err
