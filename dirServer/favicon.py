FAVICON_PATH = "/favicon.svg"
FAVICON_TYPE = "image/svg+xml"

FAVICON_SVG = b"""<?xml version="1.0" encoding="UTF-8"?>
<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 32 32" width="32" height="32">
  <path d="M2 7a2 2 0 0 1 2-2h8l3 3h13a2 2 0 0 1 2 2v15a2 2 0 0 1-2 2H4a2 2 0 0 1-2-2z" fill="#e8b04a"/>
  <path d="M2 12h28v13a2 2 0 0 1-2 2H4a2 2 0 0 1-2-2z" fill="#f4c85f"/>
  <path d="M16 14l-5 5h3v4h4v-4h3z" fill="#ffffff"/>
</svg>
"""
