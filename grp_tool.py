# grp.bin graphics extraction/insertion script
# for Suzumiya Haruhi no Chokuretsu (DS)
# Last updated: 2026-10-19
#
# Works on single files that were already pulled out of grp.bin (and
# decompressed). Since the archive isn't around to ask, the file's archive
# index is given on the command line, and its name is taken from the file
# name unless --name=... says otherwise.

import json
import os
import re
import sys

from PIL import Image

from grp_file import FORM_TEXTURE, FORM_TILE, GraphicsFile, new_texture
from grp_layout import LayoutEntry
from grp_pixels import FORM_4BPP, FORM_8BPP

# Options that are meaningless as a bare --flag
VALUE_OPTIONS = ('tidx', 'index', 'max-frames', 'name')

def read_file(path):
    with open(path, 'rb') as f:
        return f.read()

def write_file(path, data):
    with open(path, 'wb') as f:
        f.write(data)
    print(f'Wrote {path}')

def parse_options(args):
    # Split "--key=value" and "--flag" arguments from the positional ones
    positional = []
    options = {}
    for arg in args:
        if arg.startswith('--'):
            key, _, value = arg[2:].partition('=')
            options[key] = value if value != '' else True
        else:
            positional.append(arg)
    return (positional, options)

def archive_name(path, options):
    # Archive names have no dots in them, e.g. "SYS_ANI_PANBNA"
    if 'name' in options:
        return options['name'].upper()
    return os.path.basename(path).upper().replace('.', '')

def load(path, index, options):
    return GraphicsFile(read_file(path), int(index, 0), archive_name(path, options))

def parse_new_image_name(path):
    # <anything>_<4bpp|8bpp>_<texture|tile>_..._<NAME>.png, optionally with tidx<N> somewhere
    components = os.path.splitext(os.path.basename(path))[0].split('_')
    if len(components) < 3:
        raise ValueError(f'Image {path} should be named like "xxx_8bpp_texture_NAME.png"')
    pixel_forms = {'4bpp': FORM_4BPP, '8bpp': FORM_8BPP}
    forms = {'texture': FORM_TEXTURE, 'tile': FORM_TILE}
    if components[1].lower() not in pixel_forms:
        raise ValueError(f"Image {path} does not have its tile form (second part should be '4BPP' or '8BPP')")
    if components[2].lower() not in forms:
        raise ValueError(f"Image {path} does not have its image form (third part should be 'texture' or 'tile')")
    transparent_index = -1
    match = re.search(r'tidx(\d+)', path)
    if match is not None:
        transparent_index = int(match.group(1))
    return (pixel_forms[components[1].lower()], forms[components[2].lower()], components[-1].upper(), transparent_index)

def print_usage(args):
    print('Usage:')
    print(f'    python {args[0]} dump-img <shtx.bin> <index> <output.png> [--tidx=N]')
    print(f'    python {args[0]} insert-img <original-shtx.bin> <index> <edited.png> <new-shtx.bin> [--set-palette] [--tidx=N] [--new-size]')
    print(f'    python {args[0]} new-img <xxx_8bpp_texture_NAME.png> <new-shtx.bin> [--index=N]')
    print(f'    python {args[0]} dump-palette <shtx.bin> <index> <output.png>')
    print(f'    python {args[0]} dump-layout <layout.bnl> <index> <output.png> <texture.bin>... [--dark] [--name=NAME]')
    print(f'    python {args[0]} dump-layout-json <layout.bnl> <index> <output.json> [--name=NAME]')
    print(f'    python {args[0]} make-layout <original-layout.bnl> <index> <edited.json> <new-layout.bnl> [--name=NAME]')
    print(f'    python {args[0]} dump-anim <anim.bna> <index> <shtx.bin> <shtx-index> <output-prefix> [--max-frames=N] [--name=NAME]')

def main(args):
    positional, options = parse_options(args)
    if len(positional) < 2:
        print_usage(args)
        return 1
    for key in VALUE_OPTIONS:
        if options.get(key) is True:
            print(f'Option --{key} needs a value, e.g. --{key}=0')
            print_usage(args)
            return 1
    command = positional[1]
    rest = positional[2:]
    transparent_index = int(options.get('tidx', -1))

    if command == 'dump-img':
        if len(rest) != 3:
            print_usage(args)
            return 1
        graphics = load(rest[0], rest[1], options)
        graphics.get_image(transparent_index).save(rest[2], format='PNG')
        print(f'Wrote {rest[2]}')
    elif command == 'insert-img':
        if len(rest) != 4:
            print_usage(args)
            return 1
        graphics = load(rest[0], rest[1], options)
        with Image.open(rest[2], formats=('PNG',)) as edited_image:
            graphics.set_image(edited_image, set_palette='set-palette' in options,
                               transparent_index=transparent_index, new_size='new-size' in options)
        write_file(rest[3], graphics.get_bytes())
    elif command == 'new-img':
        if len(rest) != 2:
            print_usage(args)
            return 1
        pixel_form, form, name, transparent_index = parse_new_image_name(rest[0])
        with Image.open(rest[0], formats=('PNG',)) as image:
            graphics = new_texture(image, pixel_form, form, name, transparent_index, int(options.get('index', '0'), 0))
        write_file(rest[1], graphics.get_bytes())
    elif command == 'dump-palette':
        if len(rest) != 3:
            print_usage(args)
            return 1
        graphics = load(rest[0], rest[1], options)
        graphics.get_palette_image().save(rest[2], format='PNG')
        print(f'Wrote {rest[2]}')
    elif command == 'dump-layout':
        if len(rest) < 4:
            print_usage(args)
            return 1
        layout = load(rest[0], rest[1], options)
        # The textures have to be given in archive order, same as they follow the layout
        textures = [GraphicsFile(read_file(path), name=os.path.basename(path).upper()).get_texture(transparent_index=0)
                    for path in rest[3:]]
        image, _ = layout.get_layout(textures, dark_mode='dark' in options)
        image.save(rest[2], format='PNG')
        print(f'Wrote {rest[2]}')
    elif command == 'dump-layout-json':
        if len(rest) != 3:
            print_usage(args)
            return 1
        layout = load(rest[0], rest[1], options)
        with open(rest[2], 'w', encoding='utf-8', newline='\n') as f:
            json.dump([e.to_dict() for e in layout.layout_entries], f, ensure_ascii=False, indent=4)
        print(f'Wrote {rest[2]}')
    elif command == 'make-layout':
        if len(rest) != 4:
            print_usage(args)
            return 1
        layout = load(rest[0], rest[1], options)
        with open(rest[2], 'r', encoding='utf-8') as f:
            layout.layout_entries = [LayoutEntry.from_dict(d) for d in json.load(f)]
        write_file(rest[3], layout.get_bytes())
    elif command == 'dump-anim':
        if len(rest) != 5:
            print_usage(args)
            return 1
        animation = load(rest[0], rest[1], options)
        texture = GraphicsFile(read_file(rest[2]), int(rest[3], 0), os.path.basename(rest[2]).upper())
        max_frames = int(options['max-frames']) if 'max-frames' in options else None
        frames = animation.get_animation_frames(texture, max_frames)
        for (i, frame) in enumerate(frames):
            frame.get_image().save(f'{rest[4]}_{i:03d}.png', format='PNG')
        print(f'Wrote {len(frames)} frames to {rest[4]}_###.png')
    else:
        print(f'Invalid command "{command}" -- expected "dump-img," "insert-img," "new-img," "dump-palette," '
              f'"dump-layout," "dump-layout-json," "make-layout," or "dump-anim"')
        return 1

if __name__ == '__main__':
    exit(main(sys.argv))
