from __future__ import annotations

from fileease import create_app


app = create_app()
