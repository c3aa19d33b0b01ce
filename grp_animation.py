# BNA palette animation parsing and playback for grp.bin
# for Suzumiya Haruhi no Chokuretsu (DS)
# Last updated: 2026-10-19
#
# There are two kinds of palette animation, and a file only ever has one
# kind (the file name says which):
# - PAN: rotate a slice of the palette by one slot every N frames
# - CAN: fade one palette slot through a list of colors
# Both are played back against an SHTX texture, producing one copy of the
# texture per frame.

import math

from grp_errors import GraphicsFormatError, GraphicsResolveError
from grp_palette import to24

ANIMATION_ROTATE = 'PAN'
ANIMATION_COLOR_CYCLE = 'CAN'

ROTATE_ENTRY_SIZE = 0x08
COLOR_CYCLE_ENTRY_SIZE = 0xCC

ROTATE_RIGHT = 1
ROTATE_LEFT = 2
# Shows up in the game's code but never in the data
ROTATE_RESERVED = 3

MAX_CONTROL_POINTS = 32
# Durations in the file are in frames; the game counts in 1/32 frames
DURATION_SCALE = 32
CLOCK_STEP = 0x20
CLOCK_WRAP = 0x17E0
# Bail out here if the color animation never comes back around
MAX_COLOR_FRAMES = 1080

ABSOLUTE_COLORS_FLAG = 0x10

def read_short(data, offset):
    return int.from_bytes(data[offset:offset+2], 'little', signed=True)

def write_short(data, offset, value):
    data[offset:offset+2] = value.to_bytes(2, 'little', signed=True)

def trunc_div(a, b):
    # Division rounding toward zero, like the game does
    q = abs(a) // abs(b)
    return q if (a < 0) == (b < 0) else -q

class RotateEntry:
    kind = ANIMATION_ROTATE

    def __init__(self, palette_offset=0, swap_size=0, segment_size=0, frames_per_tick=0, direction=ROTATE_RIGHT):
        self.palette_offset = palette_offset
        self.swap_size = swap_size
        self.segment_size = segment_size
        self.frames_per_tick = frames_per_tick
        self.direction = direction

    @classmethod
    def from_bytes(cls, data):
        if len(data) != ROTATE_ENTRY_SIZE:
            raise GraphicsFormatError(f'Palette rotation entry must be 0x{ROTATE_ENTRY_SIZE:X} bytes (was 0x{len(data):X})')
        return cls(palette_offset=read_short(data, 0x00),
                   swap_size=read_short(data, 0x02),
                   segment_size=data[0x04],
                   frames_per_tick=data[0x05],
                   direction=read_short(data, 0x06))

    def to_bytes(self):
        data = bytearray(ROTATE_ENTRY_SIZE)
        write_short(data, 0x00, self.palette_offset)
        write_short(data, 0x02, self.swap_size)
        data[0x04] = self.segment_size
        data[0x05] = self.frames_per_tick
        write_short(data, 0x06, self.direction)
        return data

    def is_active(self):
        return self.frames_per_tick > 0 and self.segment_size > 0

    def __str__(self):
        return f'PAN Off: {self.palette_offset:04X} Type: {self.direction} FPT: {self.frames_per_tick} Size: {self.swap_size}x{self.segment_size}'

class ColorCycleEntry:
    kind = ANIMATION_COLOR_CYCLE

    def __init__(self, palette_offset=0, determinant=0, indexer=0, control_points=None,
                 red=0, green=0, blue=0, color=0):
        self.palette_offset = palette_offset
        self.determinant = determinant
        self.indexer = indexer
        # Each one is [color or palette index, duration, elapsed]. Always 32
        # of them in the file; the list ends at the first zero duration
        self.control_points = [list(p) for p in control_points or []]
        while len(self.control_points) < MAX_CONTROL_POINTS:
            self.control_points.append([0, 0, 0])
        self.red = red
        self.green = green
        self.blue = blue
        self.color = color

    @property
    def source_is_absolute(self):
        return (self.determinant & ABSOLUTE_COLORS_FLAG) != 0

    @classmethod
    def from_bytes(cls, data):
        if len(data) != COLOR_CYCLE_ENTRY_SIZE:
            raise GraphicsFormatError(f'Palette color entry must be 0x{COLOR_CYCLE_ENTRY_SIZE:X} bytes (was 0x{len(data):X})')
        control_points = []
        for i in range(MAX_CONTROL_POINTS):
            base = 0x04 + i * 6
            control_points.append([read_short(data, base), read_short(data, base + 2), read_short(data, base + 4)])
        return cls(palette_offset=read_short(data, 0x00),
                   determinant=data[0x02],
                   indexer=data[0x03],
                   control_points=control_points,
                   red=read_short(data, 0xC4),
                   green=read_short(data, 0xC6),
                   blue=read_short(data, 0xC8),
                   color=read_short(data, 0xCA))

    def to_bytes(self):
        data = bytearray(COLOR_CYCLE_ENTRY_SIZE)
        write_short(data, 0x00, self.palette_offset)
        data[0x02] = self.determinant
        data[0x03] = self.indexer
        for (i, (color, duration, elapsed)) in enumerate(self.control_points[:MAX_CONTROL_POINTS]):
            base = 0x04 + i * 6
            write_short(data, base, color)
            write_short(data, base + 2, duration)
            write_short(data, base + 4, elapsed)
        write_short(data, 0xC4, self.red)
        write_short(data, 0xC6, self.green)
        write_short(data, 0xC8, self.blue)
        write_short(data, 0xCA, self.color)
        return data

    def __str__(self):
        return f'CAN Off: {self.palette_offset:04X} Unk: {self.determinant:04X}'

def read_animation_entries(data, kind):
    if kind == ANIMATION_ROTATE:
        size, entry_class = ROTATE_ENTRY_SIZE, RotateEntry
    elif kind == ANIMATION_COLOR_CYCLE:
        size, entry_class = COLOR_CYCLE_ENTRY_SIZE, ColorCycleEntry
    else:
        raise GraphicsFormatError(f'Unknown palette animation kind {kind!r}')
    if len(data) % size != 0:
        raise GraphicsFormatError(f'{kind} animation data is 0x{len(data):X} bytes -- expected a multiple of 0x{size:X}')
    return [entry_class.from_bytes(data[i:i+size]) for i in range(0, len(data), size)]

def stored_color_count(texture):
    # The realized palette is padded to 256, but a 4bpp block only holds 48
    return len(texture.palette_data) // 2

def write_animation(entries):
    data = bytearray()
    for entry in entries:
        data.extend(entry.to_bytes())
    return data

# --- Palette rotation ---

def rotate_section_right(palette, offset, size):
    section = palette[offset:offset+size]
    return palette[:offset] + section[-1:] + section[:-1] + palette[offset+size:]

def rotate_section_left(palette, offset, size):
    section = palette[offset:offset+size]
    return palette[:offset] + section[1:] + section[:1] + palette[offset+size:]

def check_rotate_entry(entry, palette_length):
    if entry.direction == ROTATE_RESERVED:
        raise GraphicsFormatError(f'Palette rotation type {ROTATE_RESERVED} is not supported ({entry})')
    if entry.direction != ROTATE_RIGHT and entry.direction != ROTATE_LEFT:
        raise GraphicsFormatError(f'Invalid animation type on palette rotation animation entry ({entry.direction})')
    if entry.palette_offset < 0 or entry.palette_offset + entry.segment_size > palette_length:
        raise GraphicsResolveError(f'Palette rotation covers slots {entry.palette_offset}..{entry.palette_offset + entry.segment_size - 1}, '
                                   f'but the palette has {palette_length} colors')

def rotation_cycle_length(entries):
    return math.lcm(*[e.frames_per_tick * e.segment_size for e in entries if e.is_active()])

def rotate_frames(entries, texture, max_frames=None):
    active = [e for e in entries if e.is_active()]
    for entry in active:
        check_rotate_entry(entry, stored_color_count(texture))

    num_frames = rotation_cycle_length(entries)
    if max_frames is not None:
        num_frames = min(num_frames, max_frames)

    frames = []
    for f in range(num_frames):
        palette = list(texture.palette)
        for entry in active:
            if f % entry.frames_per_tick != 0:
                continue
            if entry.direction == ROTATE_RIGHT:
                palette = rotate_section_right(palette, entry.palette_offset, entry.segment_size)
            else:
                palette = rotate_section_left(palette, entry.palette_offset, entry.segment_size)
        texture.set_palette(palette)
        frames.append(texture.clone())
    return frames

# --- Palette color cycling ---

def split_rgb555(color):
    return (color & 0x1F, (color >> 5) & 0x1F, (color >> 10) & 0x1F)

def join_rgb555(red, green, blue):
    return (red & 0x1F) | ((green & 0x1F) << 5) | ((blue & 0x1F) << 10)

class ColorCycleState:
    """Playback state for one CAN entry.

    Creating one primes the entry: durations get converted to clock units,
    elapsed counters are zeroed, and the color currently in the entry's
    palette slot becomes the color the first fade starts from. The entry
    itself is left alone so it still repacks byte-for-byte.
    """

    def __init__(self, entry, palette, stored_colors=None):
        # Only the colors actually stored in the file can be animated
        if stored_colors is None:
            stored_colors = len(palette)
        if not 0 <= entry.palette_offset < stored_colors:
            raise GraphicsResolveError(f'Palette color entry writes slot {entry.palette_offset}, '
                                       f'but the palette has {stored_colors} colors')
        self.entry = entry
        self.absolute = entry.source_is_absolute
        self.points = []
        for (color, duration, _) in entry.control_points:
            if duration <= 0 or len(self.points) >= MAX_CONTROL_POINTS:
                break
            if not self.absolute and not 0 <= color < stored_colors:
                raise GraphicsResolveError(f'Palette color entry references palette index {color}, '
                                           f'but the palette has {stored_colors} colors')
            self.points.append([color, duration * DURATION_SCALE, 0])

        r, g, b = palette[entry.palette_offset][:3]
        self.working = (r >> 3, g >> 3, b >> 3)

    def resolve(self, color, palette):
        if self.absolute:
            return split_rgb555(color)
        r, g, b = palette[color][:3]
        return (r >> 3, g >> 3, b >> 3)

    def locate(self, t, palette):
        # Every segment we walk past leaves its color behind as the start of the next
        i = 0
        position = t
        while position >= self.points[i][1]:
            position -= self.points[i][1]
            self.working = self.resolve(self.points[i][0], palette)
            i += 1
            if i == len(self.points):
                i = 0
        return (i, position)

    def interpolate(self, i, elapsed, palette):
        duration = self.points[i][1]
        self.points[i][2] = elapsed
        target = self.resolve(self.points[i][0], palette)
        return tuple(t + trunc_div((s - t) * (duration - elapsed), duration)
                     for (s, t) in zip(self.working, target))

    def step(self, t, palette):
        if not self.points:
            return
        (i, elapsed) = self.locate(t, palette)
        red, green, blue = self.interpolate(i, elapsed, palette)
        palette[self.entry.palette_offset] = to24(join_rgb555(red, green, blue))

def color_cycle_frames(entries, texture, max_frames=MAX_COLOR_FRAMES):
    # Priming checks every entry before anything touches the palette
    stored_colors = stored_color_count(texture)
    states = [ColorCycleState(entry, texture.palette, stored_colors) for entry in entries]
    if max_frames is None:
        max_frames = MAX_COLOR_FRAMES

    frames = []
    t = 0
    reference = None
    previous = None
    changes = 0
    for f in range(max_frames):
        palette = list(texture.palette)
        for state in states:
            state.step(t, palette)
        t += CLOCK_STEP
        if t >= CLOCK_WRAP:
            t = 0
        texture.set_palette(palette)
        frames.append(texture.clone())

        # There's no frame count anywhere in the data, so guess: stop once
        # the palette has moved a couple of times and is back where it began
        current = list(texture.palette)
        if f == 0:
            reference = current
        else:
            if current != previous:
                changes += 1
            if changes >= 2 and current == reference:
                break
        previous = current
    return frames

def animation_frames(kind, entries, texture, max_frames=None):
    if kind == ANIMATION_ROTATE:
        return rotate_frames(entries, texture, max_frames)
    if kind == ANIMATION_COLOR_CYCLE:
        return color_cycle_frames(entries, texture, max_frames)
    raise GraphicsFormatError(f'Unknown palette animation kind {kind!r}')
