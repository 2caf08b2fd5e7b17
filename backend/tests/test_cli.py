import pytest

from conftest import make_image
from image_optimizer.cli import build_parser, main


def test_parser_accepts_long_and_short_flags():
    args = build_parser().parse_args(["-p", "p1", "-f", "-s", "--strict"])

    assert args.post_id == "p1"
    assert args.force and args.stats and args.strict
    assert args.file is None


def test_unknown_preset_is_rejected_by_parser():
    with pytest.raises(SystemExit) as exc:
        build_parser().parse_args(["--file", "x.jpg", "--preset", "og-jpg"])
    assert exc.value.code == 2


def test_post_run_writes_default_variant(settings):
    make_image(settings.raw_dir / "p1" / "inline.jpg")

    assert main(["--postId", "p1"], settings=settings) == 0
    assert (settings.public_dir / "p1" / "inline.webp").is_file()


def test_single_file_with_preset_and_name(settings):
    src = make_image(settings.raw_dir / "p1" / "shot.png", fmt="PNG")

    code = main(["--file", str(src), "--preset", "thumb", "--name", "hero", "--stats"], settings=settings)

    assert code == 0
    assert (settings.public_dir / "p1" / "hero-thumb.webp").is_file()


def test_missing_file_exits_non_zero(settings):
    assert main(["--file", str(settings.raw_dir / "nope.jpg")], settings=settings) == 1


def test_invalid_post_id_exits_non_zero(settings):
    assert main(["--postId", "../etc"], settings=settings) == 1


def test_dry_run_writes_nothing(settings, capsys):
    make_image(settings.raw_dir / "p1" / "inline.jpg")

    assert main(["--dry-run"], settings=settings) == 0
    assert "p1/inline.jpg: default" in capsys.readouterr().out
    assert not settings.public_dir.exists()


def test_strict_mode_fails_on_broken_image(settings):
    broken = settings.raw_dir / "p1" / "broken.jpg"
    broken.parent.mkdir(parents=True)
    broken.write_bytes(b"not an image")

    assert main(["--postId", "p1"], settings=settings) == 0
    assert main(["--postId", "p1", "--strict"], settings=settings) == 1


def test_lqip_is_not_offered_as_a_preset_choice():
    with pytest.raises(SystemExit) as exc:
        build_parser().parse_args(["--file", "x.jpg", "--preset", "lqip"])
    assert exc.value.code == 2


def test_escaping_name_exits_non_zero(settings, tmp_path):
    src = make_image(settings.raw_dir / "p1" / "shot.png", fmt="PNG")

    assert main(["--file", str(src), "--name", "../../escaped"], settings=settings) == 1
    assert not list(tmp_path.rglob("escaped*"))
