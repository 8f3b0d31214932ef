import html
import urllib.parse
from typing import Iterable

from asyserve.common.exceptions import RenderError
from asyserve.fileserver.listing import EntryInfo

PAGE_TEMPLATE = '''<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Directory listing</title>
    <style>
        body {{ font-family: 'Segoe UI', system-ui, sans-serif; margin: 24px; color: #1e293b; }}
        ul {{ list-style: none; padding: 0; }}
        li {{ padding: 4px 0; }}
        a {{ text-decoration: none; color: #2563eb; }}
        a:hover {{ text-decoration: underline; }}
        li.dir a {{ font-weight: 600; color: #1d4ed8; }}
        .upload {{ margin-top: 24px; padding: 16px; border: 2px dashed #059669; border-radius: 8px; }}
    </style>
</head>
<body>
    <h1>Directory listing</h1>
    <ul>
{entries}
    </ul>
{upload}
</body>
</html>
'''

UPLOAD_FORM = '''    <form class="upload" method="post" enctype="multipart/form-data">
        <input type="file" name="file" required>
        <button type="submit">Upload</button>
    </form>'''


def render_entry(entry:EntryInfo, link_prefix:str = ''):
    href = link_prefix + urllib.parse.quote(entry.name)
    label = html.escape(entry.name)
    if entry.is_dir:
        return '        <li class="dir"><a href="%s/">&#128193; %s/</a></li>' % (href, label)
    return '        <li class="file"><a href="%s">&#128196; %s</a></li>' % (href, label)

def render_listing(entries:Iterable[EntryInfo], allow_upload:bool = False, link_prefix:str = '') -> str:
    """
    Renders the HTML page for a directory listing.

    Links are relative to the directory URL, directories carry a trailing
    slash so that relative links keep working one level down.
    ``link_prefix`` is put in front of every link, it is needed when the
    page URL lacks the trailing slash of the directory. Entries are
    rendered in the order given. The output only depends on the arguments.
    """
    try:
        rows = '\n'.join(render_entry(entry, link_prefix) for entry in entries)
        upload = UPLOAD_FORM if allow_upload else ''
        return PAGE_TEMPLATE.format(entries=rows, upload=upload)
    except Exception as e:
        raise RenderError('Failed to render listing: %s' % e) from e
