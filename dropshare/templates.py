"""Static HTML pages served in receive mode."""

import html

UPLOAD_FORM = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>dropshare - upload</title></head>
<body>
<h1>dropshare</h1>
<p>Pick one file to send to this machine.</p>
<form method="post" action="/" enctype="multipart/form-data">
  <input type="file" name="upload-file" required>
  <input type="submit" value="Upload">
</form>
</body>
</html>
"""

RECEIPT = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>dropshare - received</title></head>
<body>
<h1>Upload complete</h1>
<p>Received <b>{filename}</b> ({bytes} bytes).</p>
</body>
</html>
"""

CONFLICT = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>dropshare - not saved</title></head>
<body>
<h1>Upload not saved</h1>
<p><b>{filename}</b> already exists on the receiving side and was left untouched.</p>
</body>
</html>
"""


def render(template: str, filename: str, byte_count: int = 0) -> bytes:
    """Substitute {filename} and {bytes}, escaping the filename."""
    page = template.replace('{filename}', html.escape(filename))
    page = page.replace('{bytes}', str(byte_count))
    return page.encode('utf-8')
