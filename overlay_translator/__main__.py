"""Package entry point for ``python -m overlay_translator``.

WHY: Users run the translator as ``python -m overlay_translator input.json``
for a one-shot CLI run, or ``python -m overlay_translator --serve`` to start
the session API. Python's ``-m`` flag looks for ``__main__.py`` inside the
package and executes it.

HOW: Checks sys.argv for the ``--serve`` flag. If present, starts the
FastAPI app under uvicorn. Otherwise, delegates to the CLI's main().

RULES:
- ``--serve`` starts the HTTP API on port 8000
- Without ``--serve``, falls through to the CLI
"""

import sys

if __name__ == "__main__":
    if "--serve" in sys.argv:
        from overlay_translator.server.app import run_api
        run_api()
    else:
        from overlay_translator.cli import main
        main()
