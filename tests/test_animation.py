import pytest

from grp_animation import (ANIMATION_ROTATE, MAX_COLOR_FRAMES, ROTATE_LEFT, ROTATE_RIGHT, ColorCycleEntry,
                           ColorCycleState, RotateEntry, animation_frames, color_cycle_frames,
                           read_animation_entries, rotate_frames, rotation_cycle_length, trunc_div,
                           write_animation)
from grp_errors import GraphicsFormatError, GraphicsResolveError
from grp_file import GraphicsFile
from grp_pixels import FORM_4BPP
from shtx_helpers import make_shtx

A = (248, 0, 0)
B = (0, 248, 0)
C = (0, 0, 248)
D = (248, 248, 0)
WHITE = (248, 248, 248)

def texture(colors):
    return GraphicsFile(make_shtx(colors=colors), 0x100, 'TEXTURE')

def test_trunc_div_rounds_toward_zero():
    assert trunc_div(7, 2) == 3
    assert trunc_div(-7, 2) == -3
    assert trunc_div(-31 * 512, 1024) == -15

def test_rotate_entry_record():
    data = bytes([0x10, 0x00, 0x02, 0x00, 0x04, 0x03, 0x02, 0x00])
    entry = RotateEntry.from_bytes(data)
    assert entry.palette_offset == 0x10
    assert entry.swap_size == 2
    assert entry.segment_size == 4
    assert entry.frames_per_tick == 3
    assert entry.direction == ROTATE_LEFT
    assert entry.to_bytes() == data
    with pytest.raises(GraphicsFormatError):
        read_animation_entries(data + b'\x00', ANIMATION_ROTATE)

def test_cycle_length_is_lcm():
    entries = [RotateEntry(segment_size=4, frames_per_tick=2), RotateEntry(segment_size=2, frames_per_tick=3),
               RotateEntry(segment_size=0, frames_per_tick=5)]
    assert rotation_cycle_length(entries) == 24
    assert rotation_cycle_length([]) == 1

def test_rotate_right():
    tex = texture([A, B, C, D])
    frames = rotate_frames([RotateEntry(0, 0, 4, 2, ROTATE_RIGHT)], tex)
    assert len(frames) == 8
    assert frames[1].palette[:4] == [D, A, B, C]
    assert frames[3].palette[:4] == [C, D, A, B]
    assert frames[7].palette[:4] == [A, B, C, D]

def test_rotate_left_with_offset():
    tex = texture([WHITE, A, B, C])
    frames = rotate_frames([RotateEntry(1, 0, 3, 1, ROTATE_LEFT)], tex)
    assert len(frames) == 3
    assert frames[0].palette[:4] == [WHITE, B, C, A]
    assert frames[1].palette[:4] == [WHITE, C, A, B]

def test_rotate_snapshots_are_independent():
    tex = texture([A, B, C, D])
    frames = rotate_frames([RotateEntry(0, 0, 4, 1, ROTATE_RIGHT)], tex)
    assert frames[0].palette[:4] != frames[1].palette[:4]
    frames[0].palette[0] = WHITE
    assert frames[1].palette[0] != WHITE
    # Each frame re-encodes to a complete file
    assert GraphicsFile(frames[1].get_bytes(), 0x100, 'TEXTURE').palette[:4] == [C, D, A, B]

def test_rotate_max_frames():
    tex = texture([A, B, C, D])
    assert len(rotate_frames([RotateEntry(0, 0, 4, 2, ROTATE_RIGHT)], tex, max_frames=3)) == 3

@pytest.mark.parametrize('direction', [3, 0, 7])
def test_bad_rotation_direction_fails_before_touching_the_palette(direction):
    tex = texture([A, B, C, D])
    before = tex.get_bytes()
    with pytest.raises(GraphicsFormatError):
        rotate_frames([RotateEntry(0, 0, 4, 1, ROTATE_RIGHT), RotateEntry(0, 0, 4, 1, direction)], tex)
    assert tex.get_bytes() == before

def test_rotation_outside_palette_is_rejected():
    tex = texture([A])
    with pytest.raises(GraphicsResolveError):
        rotate_frames([RotateEntry(254, 0, 4, 1, ROTATE_RIGHT)], tex)

def color_entry(points, offset=1, determinant=0x10):
    return ColorCycleEntry(palette_offset=offset, determinant=determinant, control_points=points)

def test_color_entry_record():
    entry = color_entry([[0x7FFF, 2, 0], [0x001F, 3, 0]], offset=5)
    data = entry.to_bytes()
    assert len(data) == 0xCC
    assert data[0:4] == b'\x05\x00\x10\x00'
    assert data[4:10] == b'\xFF\x7F\x02\x00\x00\x00'
    parsed = ColorCycleEntry.from_bytes(data)
    assert parsed.source_is_absolute
    assert parsed.control_points[1] == [0x1F, 3, 0]
    assert parsed.to_bytes() == data
    assert write_animation([entry, entry]) == data + data

def test_priming_scales_durations_without_touching_the_entry():
    entry = color_entry([[0, 32, 5], [0x7FFF, 32, 9]])
    state = ColorCycleState(entry, [WHITE] * 256)
    assert state.points == [[0, 1024, 0], [0x7FFF, 1024, 0]]
    assert state.working == (31, 31, 31)
    assert entry.control_points[0] == [0, 32, 5]

def test_color_cycle_midpoints():
    tex = texture([A, WHITE])
    frames = color_cycle_frames([color_entry([[0x0000, 32, 0], [0x7FFF, 32, 0]])], tex)
    # First segment fades white -> black, halfway there at t=512 (frame 16)
    assert frames[16].palette[1] == (15 << 3, 15 << 3, 15 << 3)
    # Second fades black -> white, halfway at t=1536
    assert frames[48].palette[1] == (16 << 3, 16 << 3, 16 << 3)
    assert frames[0].palette[1] == WHITE
    assert frames[1].palette[1] == (30 << 3, 30 << 3, 30 << 3)
    # Only the animated slot moves
    assert all(f.palette[0] == A for f in frames)

def test_color_cycle_stops_when_palette_comes_back():
    tex = texture([A, WHITE])
    frames = color_cycle_frames([color_entry([[0x0000, 32, 0], [0x7FFF, 32, 0]])], tex)
    assert len(frames) == 64
    assert frames[-1].palette == frames[0].palette
    assert frames[-2].palette != frames[0].palette

def test_color_cycle_palette_references():
    tex = texture([A, WHITE, C])
    entry = color_entry([[2, 4, 0]], offset=0, determinant=0)
    frames = color_cycle_frames([entry], tex, max_frames=10)
    # Never comes back to red, so it runs until the cap
    assert len(frames) == 10
    assert frames[2].palette[0] == (15 << 3, 0, 16 << 3)
    assert frames[9].palette[0] == C

def test_color_cycle_without_points_leaves_palette_alone():
    tex = texture([A, WHITE])
    frames = color_cycle_frames([color_entry([])], tex, max_frames=5)
    assert len(frames) == 5
    assert all(f.palette[:2] == [A, WHITE] for f in frames)
    assert MAX_COLOR_FRAMES == 1080

def test_color_cycle_bad_references_are_rejected_up_front():
    tex = texture([A, WHITE])
    before = tex.get_bytes()
    with pytest.raises(GraphicsResolveError):
        color_cycle_frames([color_entry([[0, 1, 0]]), color_entry([[300, 1, 0]], determinant=0)], tex)
    with pytest.raises(GraphicsResolveError):
        color_cycle_frames([color_entry([[0, 1, 0]], offset=256)], tex)
    assert tex.get_bytes() == before

def test_animation_frames_dispatch():
    tex = texture([A, B, C, D])
    frames = animation_frames(ANIMATION_ROTATE, [RotateEntry(0, 0, 2, 1, ROTATE_RIGHT)], tex)
    assert [f.palette[:2] for f in frames] == [[B, A], [A, B]]
    with pytest.raises(GraphicsFormatError):
        animation_frames('XYZ', [], tex)

def test_4bpp_textures_only_animate_their_48_stored_colors():
    tex = GraphicsFile(make_shtx(FORM_4BPP, colors=[A, B, C, D]), 0x100, 'SMALL')
    before = tex.get_bytes()
    with pytest.raises(GraphicsResolveError):
        rotate_frames([RotateEntry(100, 0, 4, 1, ROTATE_RIGHT)], tex)
    with pytest.raises(GraphicsResolveError):
        rotate_frames([RotateEntry(46, 0, 4, 1, ROTATE_RIGHT)], tex)
    with pytest.raises(GraphicsResolveError):
        color_cycle_frames([color_entry([[0x7FFF, 4, 0]], offset=100)], tex)
    with pytest.raises(GraphicsResolveError):
        color_cycle_frames([color_entry([[48, 4, 0]], offset=0, determinant=0)], tex)
    assert tex.get_bytes() == before

    # The last stored slots are still fair game
    frames = rotate_frames([RotateEntry(44, 0, 4, 1, ROTATE_RIGHT)], tex)
    assert len(frames) == 4
    frames = color_cycle_frames([color_entry([[0x7FFF, 4, 0]], offset=47)], tex, max_frames=8)
    assert frames[4].palette[47] == WHITE

def test_color_cycle_clock_wraps():
    tex = texture([A, WHITE])
    # One 300 frame fade is longer than the clock goes, so it restarts at 0x17E0
    frames = color_cycle_frames([color_entry([[0x0000, 300, 0]])], tex, max_frames=200)
    assert frames[0].palette[1] == WHITE
    assert frames[190].palette[1] != WHITE
    assert frames[191].palette[1] == frames[0].palette[1]
    assert len(frames) == 192
