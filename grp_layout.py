# BNL layout parsing and screen compositing for grp.bin
# for Suzumiya Haruhi no Chokuretsu (DS)
# Last updated: 2026-10-19
#
# A layout is an 8 byte header followed by 0x1C byte records. Each record
# blits a rectangle of one of the SHTX textures that follow the layout in
# the archive onto the screen, optionally flipped and tinted.

from PIL import Image

from grp_errors import GraphicsFormatError, GraphicsResolveError

LAYOUT_HEADER_SIZE = 0x08
LAYOUT_ENTRY_SIZE = 0x1C

NO_TINT = 0xFFFFFFFF

def read_short(data, offset):
    return int.from_bytes(data[offset:offset+2], 'little', signed=True)

def write_short(data, offset, value):
    data[offset:offset+2] = value.to_bytes(2, 'little', signed=True)

class LayoutEntry:
    # (attribute, offset) for all the shorts in a record
    FIELDS = (
        ('unknown1', 0x00),
        ('texture_ref', 0x02),
        ('unknown2', 0x04),
        ('screen_x', 0x06),
        ('screen_y', 0x08),
        ('texture_w', 0x0A),
        ('texture_h', 0x0C),
        ('texture_x', 0x0E),
        ('texture_y', 0x10),
        # Negative width/height means flipped
        ('screen_w', 0x12),
        ('screen_h', 0x14),
        ('unknown3', 0x16),
    )

    def __init__(self, texture_ref=-1, texture_x=0, texture_y=0, texture_w=0, texture_h=0,
                 screen_x=0, screen_y=0, screen_w=0, screen_h=0, tint=NO_TINT,
                 unknown1=0, unknown2=0, unknown3=0):
        self.unknown1 = unknown1
        self.texture_ref = texture_ref
        self.unknown2 = unknown2
        self.screen_x = screen_x
        self.screen_y = screen_y
        self.texture_w = texture_w
        self.texture_h = texture_h
        self.texture_x = texture_x
        self.texture_y = texture_y
        self.screen_w = screen_w
        self.screen_h = screen_h
        self.unknown3 = unknown3
        # Packed as 0xAARRGGBB
        self.tint = tint

    @classmethod
    def from_bytes(cls, data):
        if len(data) != LAYOUT_ENTRY_SIZE:
            raise GraphicsFormatError(f'Layout entry must be 0x{LAYOUT_ENTRY_SIZE:X} bytes (was 0x{len(data):X})')
        entry = cls()
        for (attr, offset) in cls.FIELDS:
            setattr(entry, attr, read_short(data, offset))
        entry.tint = int.from_bytes(data[0x18:0x1C], 'little')
        return entry

    def to_bytes(self):
        data = bytearray(LAYOUT_ENTRY_SIZE)
        for (attr, offset) in self.FIELDS:
            write_short(data, offset, getattr(self, attr))
        data[0x18:0x1C] = self.tint.to_bytes(4, 'little')
        return data

    def to_dict(self):
        d = {attr: getattr(self, attr) for (attr, _) in self.FIELDS}
        d['tint'] = f'{self.tint:08X}'
        return d

    @classmethod
    def from_dict(cls, d):
        entry = cls()
        for (attr, _) in cls.FIELDS:
            setattr(entry, attr, d[attr])
        entry.tint = int(d['tint'], 16)
        return entry

    def tint_rgba(self):
        return ((self.tint >> 16) & 0xFF, (self.tint >> 8) & 0xFF, self.tint & 0xFF, self.tint >> 24)

    def __str__(self):
        return (f'Index: {self.texture_ref}; '
                f'TX: {self.texture_x} {self.texture_y} {self.texture_x + self.texture_w} {self.texture_y + self.texture_h}, '
                f'SC: {self.screen_x} {self.screen_y} {self.screen_x + self.screen_w} {self.screen_y + self.screen_h}')

def read_layout_entries(data):
    body = len(data) - LAYOUT_HEADER_SIZE
    if body < 0 or body % LAYOUT_ENTRY_SIZE != 0:
        raise GraphicsFormatError(f'Layout data is 0x{len(data):X} bytes -- expected an 0x{LAYOUT_HEADER_SIZE:X} byte header '
                                  f'plus a multiple of 0x{LAYOUT_ENTRY_SIZE:X}')
    return [LayoutEntry.from_bytes(data[i:i+LAYOUT_ENTRY_SIZE])
            for i in range(LAYOUT_HEADER_SIZE, len(data), LAYOUT_ENTRY_SIZE)]

def write_layout(header, entries):
    data = bytearray(header[:LAYOUT_HEADER_SIZE])
    for entry in entries:
        data.extend(entry.to_bytes())
    return data

def canvas_size(entries):
    width = 0
    height = 0
    for entry in entries:
        width = max(width, entry.screen_x + abs(entry.screen_w))
        height = max(height, entry.screen_y + abs(entry.screen_h))
    return (width, height)

def texture_resolver(textures):
    def resolve(index):
        if not 0 <= index < len(textures):
            raise GraphicsResolveError(f'Layout references texture {index}, but only {len(textures)} textures are available')
        return textures[index]
    return resolve

def apply_tint(tile, tint):
    bands = [band.point(lambda v, t=t: v * t // 255) for (band, t) in zip(tile.split(), tint)]
    return Image.merge('RGBA', bands)

def render_entry(entry, texture):
    texture_w = abs(entry.texture_w)
    texture_h = abs(entry.texture_h)
    # Anything outside the texture comes out fully transparent
    tile = texture.convert('RGBA').crop((entry.texture_x, entry.texture_y,
                                         entry.texture_x + texture_w, entry.texture_y + texture_h))

    if entry.screen_w < 0:
        tile = tile.transpose(Image.Transpose.FLIP_LEFT_RIGHT)
    if entry.screen_h < 0:
        tile = tile.transpose(Image.Transpose.FLIP_TOP_BOTTOM)

    if entry.tint != NO_TINT:
        tile = apply_tint(tile, entry.tint_rgba())

    size = (abs(entry.screen_w), abs(entry.screen_h))
    if size != tile.size:
        tile = tile.resize(size, Image.Resampling.NEAREST)
    return tile

def compose(entries, resolve_texture, dark_mode=False):
    """Draw `entries` in order onto one canvas and return it as an RGBA image.

    `resolve_texture` maps an entry's texture reference to a decoded texture;
    it should raise GraphicsResolveError for references it can't satisfy, in
    which case nothing is returned. Later entries are drawn over earlier ones,
    except where their pixels are fully transparent.
    """
    width, height = canvas_size(entries)
    background = (0, 0, 0, 0xFF) if dark_mode else (0, 0, 0, 0)
    canvas = Image.new('RGBA', (width, height), background)

    for entry in entries:
        if entry.texture_ref < 0:
            continue
        texture = resolve_texture(entry.texture_ref)
        if 0 in (entry.screen_w, entry.screen_h, entry.texture_w, entry.texture_h):
            continue
        tile = render_entry(entry, texture)
        mask = tile.getchannel('A').point(lambda a: 0xFF if a != 0 else 0)
        canvas.paste(tile, (entry.screen_x, entry.screen_y), mask)

    return canvas
