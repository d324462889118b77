from __future__ import annotations

from typing import Any

from jinja2 import Template

CHANGE_MODE_TEMPLATE = """{{ prompt }}

Respond ONLY with code edits in the exact format below. Do not apply the
changes yourself. Repeat the block once per change, in file order.

**FILE: <path relative to the working directory>**
OLD lines <start>-<end>:
```
<exact existing code, copied verbatim>
```
NEW lines <start>-<end>:
```
<replacement code>
```

Rules:
- Line numbers are 1-based and inclusive; give both start and end.
- Every OLD section needs a matching NEW section.
- Keep each OLD body identical to the current file contents, including indentation.
"""


def render_template(template_text: str, **context: Any) -> str:
    return Template(template_text).render(**context)


def build_change_mode_prompt(prompt: str) -> str:
    return render_template(CHANGE_MODE_TEMPLATE, prompt=prompt.strip())
