"""Test configuration and fixtures for Inkwell tests."""

import pytest
import tempfile
import shutil
import os
from pathlib import Path
from datetime import datetime, timezone

FIXED_NOW = datetime(2024, 7, 1, tzinfo=timezone.utc)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def fixed_clock():
    """Clock frozen at 2024-07-01T00:00:00Z."""
    return lambda: FIXED_NOW


@pytest.fixture(autouse=True)
def no_build_drafts(monkeypatch):
    """Keep the developer's BUILD_DRAFTS setting out of the tests."""
    monkeypatch.delenv('BUILD_DRAFTS', raising=False)


@pytest.fixture
def mock_content_dir(temp_dir):
    """Create a mock content directory with articles in every state."""
    content_dir = Path(temp_dir) / 'src'
    articles_dir = content_dir / 'articles'
    assets_css_dir = content_dir / 'assets' / 'css'
    articles_dir.mkdir(parents=True)
    assets_css_dir.mkdir(parents=True)

    (articles_dir / 'first-post.md').write_text("""---
title: First Post
date: 2024-01-01
tags: [article, python]
published: true
---

Hello from the **first** post.
""")

    (articles_dir / 'work-in-progress.md').write_text("""---
title: Work In Progress
date: 2024-06-01
tags: [article]
published: false
---

Not ready yet.
""")

    (articles_dir / 'from-the-future.md').write_text("""---
title: From The Future
date: 2999-12-31
tags: [article]
published: true
---

Scheduled for later.
""")

    (articles_dir / 'no-flag.md').write_text("""---
title: No Flag
date: 2024-02-01
tags: article
---

Missing the published flag.
""")

    (content_dir / 'about.md').write_text("""---
title: About
---

# About

This is the about page.
""")

    (assets_css_dir / 'main.css').write_text("body {\n    color: red;\n}\n")

    return str(content_dir)


@pytest.fixture
def mock_templates_dir(temp_dir):
    """Create a mock templates directory."""
    templates_dir = Path(temp_dir) / 'templates'
    templates_dir.mkdir()

    (templates_dir / 'base.html').write_text("""<!DOCTYPE html>
<html>
<head>
    <title>{{ page.title }}</title>
</head>
<body>
    {% block content %}{% endblock %}
</body>
</html>""")

    (templates_dir / 'article.html').write_text("""{% extends "base.html" %}
{% block content %}
<article>
    <h1>{{ title }}</h1>
    <time>{{ item.date | readable_date }}</time>
    <span class="status">{{ item | publication_status }}</span>
    <div>{{ content|safe }}</div>
</article>
{% endblock %}""")

    (templates_dir / 'page.html').write_text("""{% extends "base.html" %}
{% block content %}
<div>
    <h1>{{ title }}</h1>
    <div>{{ content|safe }}</div>
</div>
{% endblock %}""")

    (templates_dir / 'articles.html').write_text("""{% extends "base.html" %}
{% block content %}
{% for article in articles %}<h2>{{ article.title }}</h2>
{% endfor %}
{% endblock %}""")

    (templates_dir / 'index.html').write_text("""{% extends "base.html" %}
{% block content %}
{% for article in latest_articles %}<h2>{{ article.title }}</h2>
{% endfor %}
<footer>{{ full_year() }}</footer>
{% endblock %}""")

    (templates_dir / '404.html').write_text("""{% extends "base.html" %}
{% block content %}<h1>Not found</h1>{% endblock %}""")

    return str(templates_dir)


@pytest.fixture
def mock_output_dir(temp_dir):
    """Create a mock output directory."""
    output_dir = Path(temp_dir) / 'dist'
    output_dir.mkdir()
    return str(output_dir)


@pytest.fixture
def in_temp_dir(temp_dir, monkeypatch):
    """Run the test from inside the temporary directory so logs land there."""
    monkeypatch.chdir(temp_dir)
    return temp_dir


@pytest.fixture
def fresh_logging(in_temp_dir):
    """Give the Inkwell logger new handlers writing under the temp directory."""
    import logging
    logger = logging.getLogger('Inkwell')

    def reset():
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)

    reset()
    yield Path(in_temp_dir) / 'logs'
    reset()
