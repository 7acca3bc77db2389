"""Entry point wrapper for ``python -m ear_trainer``.

Execution is forwarded to :func:`ear_trainer.main` so the behaviour is
identical whether the user runs ``python -m ear_trainer`` or the installed
``ear-trainer`` console script.

Example
-------
The following invocation prints a random two-beat rhythm::

    python -m ear_trainer --mode rhythm --length 3 --total-beats 2
"""

from . import main

if __name__ == "__main__":
    main()
