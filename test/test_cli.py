import argparse

import cv2
import pytest

import paperwarp
from paperlib.perspective import AspectRatio


@pytest.mark.unit
def test_argument_parsers():
    assert paperwarp.parse_point("12.5,-3") == (12.5, -3.0)
    assert paperwarp.parse_size("640x480") == (640.0, 480.0)
    assert paperwarp.parse_aspect("letter-portrait") is AspectRatio.LETTER_PORTRAIT

    for parse, text in [(paperwarp.parse_point, "12"), (paperwarp.parse_size, "640"),
                        (paperwarp.parse_aspect, "tabloid")]:
        with pytest.raises(argparse.ArgumentTypeError):
            parse(text)


@pytest.mark.unit
def test_parser_requires_a_command():
    with pytest.raises(SystemExit):
        paperwarp.build_parser().parse_args([])


@pytest.mark.unit
def test_unwarp_job():
    args = paperwarp.build_parser().parse_args([
        'unwarp', 'in.png', 'out.png', '--mode', 'local', '--scale', '2',
        '--corners', '0,0', '10,0', '0,10', '10,10',
        '--handles', '5,0', '10,5', '5,10', '0,5',
    ])

    fn, fn_args, fn_kwargs = paperwarp.build_job(args)

    assert fn.__name__ == 'correct_unwarp'
    assert fn_args[0] == 'in.png'
    assert fn_args[3] == 2.0
    assert fn_kwargs == {'mode': 'local'}


@pytest.mark.unit
def test_wrong_point_count_exits():
    args = paperwarp.build_parser().parse_args([
        'trifold', 'in.png', 'out.png', '--points', '0,0', '1,1'])

    with pytest.raises(SystemExit):
        paperwarp.build_job(args)


@pytest.mark.integration
def test_detect_blank_image(tmp_path, blank_image, capsys):
    path = tmp_path / "blank.png"
    cv2.imwrite(str(path), blank_image)

    assert paperwarp.main(['detect', str(path)]) == 0
    assert capsys.readouterr().out == ""


@pytest.mark.integration
def test_detect_prints_candidates(tmp_path, document_image, capsys):
    path = tmp_path / "doc.png"
    overlay = tmp_path / "overlay.png"
    cv2.imwrite(str(path), document_image)

    assert paperwarp.main(['detect', str(path), '--max-results', '1', '--overlay', str(overlay)]) == 0

    lines = capsys.readouterr().out.splitlines()
    assert len(lines) == 1
    assert lines[0].startswith("1\t")
    assert overlay.exists()


@pytest.mark.integration
def test_grid_command_writes_output(tmp_path, image_file, capsys):
    output = tmp_path / "straight.png"
    points = [f"{x},{y}" for y in (0, 45, 90) for x in (0, 60, 120)]

    code = paperwarp.main(['grid', str(image_file), str(output), '--rows', '3', '--cols', '3',
                           '--size', '120x90', '--dpi', '200', '--points'] + points)

    assert code == 0
    assert output.exists()
    assert capsys.readouterr().out.strip() == str(output)


@pytest.mark.integration
def test_failed_correction_exits_nonzero(tmp_path, image_file):
    code = paperwarp.main(['edges', str(image_file), str(tmp_path / "out.png"),
                           '--size', '4x4', '--points', '1,1'])
    assert code == 1
