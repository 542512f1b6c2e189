"""Entry point wrapper for ``python -m composition_generator``.

Execution is forwarded to :func:`composition_generator.cli.main` so
``python -m composition_generator`` and the installed
``composition-generator`` script behave identically.

Example
-------
::

    python -m composition_generator --key A --mode minor --bars 8 \
        --seed 3 --midi song.mid
"""

from .cli import main

if __name__ == "__main__":
    main()
