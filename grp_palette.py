# Palette conversion and color matching for grp.bin graphics
# for Suzumiya Haruhi no Chokuretsu (DS)
# Last updated: 2026-10-19

from PIL import Image, ImageDraw

# Inserted into generated palettes at the transparent index
TRANSPARENT = (0, 0, 0, 0)

def to24(rgb555):
    # NOTE: the game's own tools just shift, they don't repeat the high bits
    # into the low ones, so white comes out as (248, 248, 248)
    r = rgb555 & 0x1F
    g = (rgb555 >> 5) & 0x1F
    b = (rgb555 >> 10) & 0x1F
    return (r << 3, g << 3, b << 3)

def to15(r, g, b):
    return (r // 8) | ((g // 8) << 5) | ((b // 8) << 10)

def read_palette(data):
    colors = []
    for i in range(0, len(data) - 1, 2):
        colors.append(to24(int.from_bytes(data[i:i+2], 'little')))
    return colors

def write_palette(colors, length):
    """Encode `colors` into an RGB555 block of exactly `length` bytes.

    Colors past the end of the block are dropped; if there are fewer colors
    than the block holds, the rest of the block is zero (black).
    """
    data = bytearray(length)
    for (i, color) in enumerate(colors[:length // 2]):
        data[i*2:i*2+2] = to15(color[0], color[1], color[2]).to_bytes(2, 'little')
    return data

def color_distance(a, b):
    # 3-tuples are opaque colors
    alpha_a = a[3] if len(a) > 3 else 0xFF
    alpha_b = b[3] if len(b) > 3 else 0xFF
    dr = a[0] - b[0]
    dg = a[1] - b[1]
    db = a[2] - b[2]
    da = alpha_a - alpha_b
    return dr*dr + dg*dg + db*db + da*da

def nearest_index(palette, color):
    if len(palette) == 0:
        raise ValueError('Cannot match a color against an empty palette')
    best_index = 0
    best_distance = None
    for (i, candidate) in enumerate(palette):
        distance = color_distance(candidate, color)
        if distance == 0:
            return i
        # Strictly less, so the lowest index wins ties
        if best_distance is None or distance < best_distance:
            best_distance = distance
            best_index = i
    return best_index

def build_palette_from_image(image, max_colors, transparent_index=-1):
    """Quantize `image` down to a palette of `max_colors` colors.

    Short palettes are padded with black. With a transparent index, the
    transparent color goes in on top, so the palette ends up one longer.
    """
    if not 1 <= max_colors <= 256:
        raise ValueError(f'Cannot build a palette with {max_colors} colors')

    source = image.convert('RGB')
    if transparent_index >= 0:
        # See-through pixels get the transparent slot, so keep their hidden
        # colors from taking up real ones
        rgba = image.convert('RGBA').tobytes()
        opaque = b''.join(rgba[i:i+3] for i in range(0, len(rgba), 4) if rgba[i+3] != 0)
        source = Image.frombytes('RGB', (len(opaque) // 3, 1), opaque) if opaque else None

    palette = []
    if source is not None:
        quantized = source.quantize(colors=max_colors,
                                    method=Image.Quantize.MEDIANCUT,
                                    dither=Image.Dither.NONE)
        flat = quantized.getpalette() or []
        flat = flat[:max_colors * 3]
        palette = [tuple(flat[i:i+3]) for i in range(0, len(flat) - 2, 3)]
    while len(palette) < max_colors:
        palette.append((0, 0, 0))

    if transparent_index >= 0:
        palette.insert(transparent_index, TRANSPARENT)
    return palette

def palette_image(palette):
    # 16 colors to a row, each one a 16x16 square
    rows = (len(palette) + 15) // 16
    image = Image.new('RGB', (256, rows * 16))
    draw = ImageDraw.Draw(image)
    for (i, color) in enumerate(palette):
        row, col = divmod(i, 16)
        draw.rectangle((col * 16, row * 16, col * 16 + 15, row * 16 + 15), fill=tuple(color[:3]))
    return image
