# Copyright 2026 Firefly Software Solutions Inc
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""page-stream command-line interface.

CLI Entry Points:
    page-stream          Stream a page or video file to an ingest
"""

from typing import TYPE_CHECKING

# Lazy import so `python -m pagestream.cli.main` does not warn about
# the module already being in sys.modules
if TYPE_CHECKING:
    from pagestream.cli.main import create_parser, main

__all__ = [
    "create_parser",
    "main",
]


def __getattr__(name: str):
    """Lazy import attributes to avoid import cycles and RuntimeWarnings."""
    if name == "create_parser":
        from pagestream.cli.main import create_parser
        return create_parser
    elif name == "main":
        from pagestream.cli.main import main
        return main
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
