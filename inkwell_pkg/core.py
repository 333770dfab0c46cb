import os
import re
import shutil
import logging
import yaml
import mistune
import csscompressor
import rjsmin
from datetime import datetime
from importlib import resources
from jinja2 import Environment, FileSystemLoader, TemplateNotFound, TemplateSyntaxError
from .visibility import (
    BuildContext, ContentItem, DEFAULT_LATEST_LIMIT, utc_now, to_utc,
    is_date_in_future, publication_status, select_published, select_latest,
)

ARTICLE_TAG = 'article'

# Collection tags that are structural rather than topical
HIDDEN_TAGS = ['article', 'articles', 'nav', 'all']


def readable_date(value):
    """Format a date as a medium UTC date, e.g. 'Jan 1, 2024'."""
    moment = to_utc(value)
    if moment is None:
        return ''
    return f"{moment:%b} {moment.day}, {moment.year}"


def filter_tag_list(tags):
    """Drop collection tags from a tag list for display."""
    return [tag for tag in (tags or []) if tag not in HIDDEN_TAGS]


def normalize_tags(value):
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [str(tag) for tag in value]
    return [str(value)]


def is_safe_slug(slug):
    """A slug must name a single directory inside the output."""
    if not slug or slug in ('.', '..'):
        return False
    return not any(sep in slug for sep in ('/', '\\', os.sep, os.altsep) if sep)


class ContentLoader:
    def __init__(self, content_dir, articles_slug='articles', exclude_dirs=None, reserved_slugs=None):
        self.content_dir = content_dir
        self.articles_slug = articles_slug
        self.exclude_dirs = [os.path.abspath(d) for d in (exclude_dirs or []) if d]
        # Top-level output names that pages may not claim
        self.reserved_slugs = set(reserved_slugs or [articles_slug, 'assets'])
        self.logger = logging.getLogger('Inkwell.ContentLoader')
        self.markdown_parser = self.create_markdown_parser()

    def markdown_filter(self, text):
        """Convert markdown text to HTML."""
        return self.markdown_parser(text)

    def create_markdown_parser(self):
        """Create a Mistune markdown parser with a custom renderer."""
        class CustomRenderer(mistune.HTMLRenderer):
            def __init__(self):
                super().__init__(escape=False)
            def block_code(self, code, info=None):
                escaped_code = mistune.escape(code)
                return '<pre style="white-space: pre-wrap;"><code>{}</code></pre>'.format(escaped_code)
        return mistune.create_markdown(
            renderer=CustomRenderer(),
            plugins=['table', 'task_lists', 'strikethrough']
        )

    def parse_markdown_with_metadata(self, filepath):
        """Parse a markdown file with YAML front matter."""
        try:
            with open(filepath, 'r', encoding='utf-8') as f:
                content = f.read()
        except (IOError, OSError) as e:
            self.logger.error(f"Failed to read markdown file {filepath}: {e}")
            return {}, ""

        if not content.lstrip().startswith('---'):
            return {}, content

        parts = content.lstrip().split('---', 2)
        if len(parts) < 3:
            return {}, content

        try:
            metadata = yaml.safe_load(parts[1])
        except yaml.YAMLError as e:
            self.logger.error(f"Invalid YAML front matter in {filepath}: {e}")
            metadata = {}
        if not isinstance(metadata, dict):
            metadata = {}

        return metadata, parts[2].strip()

    def generate_excerpt(self, content):
        """Generate an excerpt from content."""
        plain_text = re.sub(r'<[^>]+>', '', content)
        words = plain_text.split()
        if len(words) > 30:
            return ' '.join(words[:30]) + '...'
        return ' '.join(words)

    def load_item(self, file_path):
        """Load a single markdown file as a ContentItem."""
        metadata, markdown_content = self.parse_markdown_with_metadata(file_path)
        html_content = self.markdown_filter(markdown_content)

        stem = os.path.splitext(os.path.basename(file_path))[0]
        parent_dir = os.path.dirname(os.path.abspath(file_path))
        if stem == 'index' and parent_dir != os.path.abspath(self.content_dir):
            stem = os.path.basename(parent_dir)
        slug = str(metadata.get('slug') or stem)
        if not is_safe_slug(slug):
            if not is_safe_slug(stem):
                raise ValueError(f"no usable slug for {file_path}")
            self.logger.error(f"Invalid slug {slug!r} in {file_path}, using {stem!r}")
            slug = stem

        tags = normalize_tags(metadata.get('tags'))
        if ARTICLE_TAG in tags:
            url = f"/{self.articles_slug}/{slug}/"
        else:
            url = f"/{slug}/"

        title = metadata.get('title')
        summary = metadata.get('summary') or metadata.get('description') or self.generate_excerpt(html_content)

        item = ContentItem(
            title=title if isinstance(title, str) else 'Untitled',
            date=metadata.get('date'),
            published=metadata.get('published'),
            tags=tags,
            slug=slug,
            summary=summary,
            content=html_content,
            url=url,
            source_path=file_path,
            data=metadata
        )
        if metadata.get('date') is not None and item.date is None:
            self.logger.warning(f"Unrecognised date {metadata.get('date')!r} in {file_path}")
        return item

    def get_markdown_files(self, directory=None):
        """Get all markdown files below a directory, skipping '_' and '.' folders."""
        directory = directory or self.content_dir
        markdown_files = []
        for root, dirs, files in os.walk(directory):
            dirs[:] = sorted(
                d for d in dirs
                if not d.startswith(('_', '.')) and os.path.abspath(os.path.join(root, d)) not in self.exclude_dirs
            )
            for file in sorted(files):
                if file.endswith('.md'):
                    markdown_files.append(os.path.join(root, file))
        return markdown_files

    def load_all(self):
        """
        Load every markdown file in the content directory.

        Each output URL belongs to the first file (in path order) that
        claims it. Later files with the same URL, and pages that would
        overwrite the articles or assets directories, are logged and skipped.
        """
        items = []
        claimed = {}
        for file_path in self.get_markdown_files():
            try:
                item = self.load_item(file_path)
            except Exception as e:
                self.logger.error(f"Error processing {file_path}: {e}")
                continue

            if not item.has_tag(ARTICLE_TAG) and item.slug in self.reserved_slugs:
                self.logger.error(f"Skipping {file_path}: slug {item.slug!r} is reserved")
                continue
            if item.url in claimed:
                self.logger.error(f"Skipping {file_path}: {item.url} is already used by {claimed[item.url]}")
                continue
            claimed[item.url] = file_path
            items.append(item)
        return items

    def get_filtered_by_tag(self, tag, items=None):
        """Return the items carrying a tag, in load order."""
        if items is None:
            items = self.load_all()
        return [item for item in items if item.has_tag(tag)]


class InfoFilter(logging.Filter):
    """Filter to allow only selected INFO messages to be shown in the console."""
    def filter(self, record):
        allowed_messages = [
            "Site build completed in",
            "Total articles generated:",
            "Total pages generated:",
            "Showing drafts and scheduled articles",
            "Building articles index",
            "Building index page",
            "Building 404 page",
            "Serving",
            "Watching",
            "Rebuilding"
        ]
        return record.levelno >= logging.WARNING or any(msg in record.getMessage() for msg in allowed_messages)


def package_templates_dir():
    """Location of the default templates shipped with the package."""
    return str(resources.files('inkwell_pkg') / 'templates')


class Inkwell:
    def __init__(self, content_dir='src', templates_dir=os.path.join('src', '_includes'), output_dir='dist',
                 assets_dir=None, articles_slug='articles', latest_limit=DEFAULT_LATEST_LIMIT,
                 site_title=None, site_url=None, minify=False, context=None, clock=utc_now):
        self.content_dir = content_dir
        self.templates_dir = templates_dir
        self.output_dir = output_dir
        self.assets_dir = assets_dir
        self.articles_slug = articles_slug.strip('/') or 'articles'
        self.site_title = site_title
        self.site_url = site_url.rstrip('/') if site_url else None
        self.minify = minify
        self.context = context or BuildContext()
        self.clock = clock
        self.articles_generated = 0
        self.pages_generated = 0

        if isinstance(latest_limit, bool) or not isinstance(latest_limit, int) or latest_limit < 0:
            raise ValueError(f"latest_limit must be a non-negative integer, got {latest_limit!r}")
        self.latest_limit = latest_limit

        if not is_safe_slug(self.articles_slug):
            raise ValueError(f"articles_slug must be a single path segment, got {articles_slug!r}")

        if not os.path.isdir(self.content_dir):
            raise FileNotFoundError(f"Content directory '{self.content_dir}' does not exist")

        # Relative templates dir that doesn't exist falls back to the packaged templates
        if not os.path.isabs(self.templates_dir) and not os.path.exists(self.templates_dir):
            self.templates_dir = package_templates_dir()
        if not os.path.isdir(self.templates_dir):
            raise FileNotFoundError(f"Templates directory '{self.templates_dir}' does not exist")

        self.setup_logging()
        self.create_output_dir()

        self.loader = ContentLoader(
            self.content_dir,
            articles_slug=self.articles_slug,
            exclude_dirs=[self.assets_dir, self.templates_dir, self.output_dir],
            reserved_slugs=[self.articles_slug, 'assets', 'index.html', '404.html']
        )

        self.env = Environment(loader=FileSystemLoader(self.templates_dir))
        self.register_filters()

    def setup_logging(self):
        """Set up logging configuration."""
        self.logger = logging.getLogger('Inkwell')
        self.logger.setLevel(logging.DEBUG)

        if not self.logger.handlers:
            # Console handler with filter
            console_handler = logging.StreamHandler()
            console_handler.setLevel(logging.INFO)
            console_handler.addFilter(InfoFilter())
            console_formatter = logging.Formatter('%(message)s')
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

            # File handler for all logs
            logs_dir = os.path.join(os.getcwd(), 'logs')
            os.makedirs(logs_dir, exist_ok=True)
            log_filename = datetime.now().strftime('inkwell_%Y-%m-%d_%H-%M-%S.log')
            log_filepath = os.path.join(logs_dir, log_filename)

            file_handler = logging.FileHandler(log_filepath)
            file_handler.setLevel(logging.DEBUG)
            file_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

    def register_filters(self):
        """Register template filters and globals on the Jinja2 environment."""
        self.env.filters['readable_date'] = readable_date
        self.env.filters['filter_tag_list'] = filter_tag_list
        self.env.filters['is_date_in_future'] = lambda value: is_date_in_future(value, self.clock())
        self.env.filters['publication_status'] = lambda item: publication_status(item, self.clock())
        self.env.globals['full_year'] = lambda: self.clock().year

    def create_output_dir(self):
        """Create the output directory if it doesn't exist."""
        os.makedirs(self.output_dir, exist_ok=True)

    def clean_output_dir(self, pages):
        """Remove files and directories generated by a previous build, keeping anything else."""
        generated = {'index.html', '404.html', 'assets', self.articles_slug}
        generated.update(page.slug for page in pages)

        for item in os.listdir(self.output_dir):
            if item not in generated:
                continue
            item_path = os.path.join(self.output_dir, item)
            try:
                if os.path.isdir(item_path):
                    shutil.rmtree(item_path)
                else:
                    os.remove(item_path)
            except (IOError, OSError) as e:
                self.logger.error(f"Failed to remove stale output {item_path}: {e}")

    def copy_assets_to_output(self):
        """Passthrough copy of the assets directory."""
        if not self.assets_dir or not os.path.isdir(self.assets_dir):
            return
        output_assets_dir = os.path.join(self.output_dir, 'assets')
        try:
            shutil.copytree(self.assets_dir, output_assets_dir, dirs_exist_ok=True)
            self.logger.info(f"Copied assets from {self.assets_dir}")
        except (IOError, OSError, shutil.Error) as e:
            self.logger.error(f"Failed to copy assets from {self.assets_dir}: {e}")

    def minify_assets(self):
        """Minify CSS and JS assets."""
        assets_output_dir = os.path.join(self.output_dir, 'assets')
        minifiers = {'.css': csscompressor.compress, '.js': rjsmin.jsmin}

        for root, _, files in os.walk(assets_output_dir):
            for file in files:
                name, ext = os.path.splitext(file)
                if ext not in minifiers or name.endswith('.min'):
                    continue
                path = os.path.join(root, file)
                try:
                    with open(path, 'r', encoding='utf-8') as f:
                        source = f.read()
                    with open(os.path.join(root, f"{name}.min{ext}"), 'w', encoding='utf-8') as f:
                        f.write(minifiers[ext](source))
                    self.logger.debug(f"Minified {file}")
                except (IOError, OSError, UnicodeDecodeError) as e:
                    self.logger.error(f"Failed to minify {file}: {e}")

    def collections(self, items):
        """Build the article collections for this run."""
        articles = self.loader.get_filtered_by_tag(ARTICLE_TAG, items)
        return {
            'articles': select_published(articles, self.context, self.clock),
            'latest_articles': select_latest(articles, self.context, self.latest_limit, self.clock),
        }

    def render_template(self, template_name, **context):
        """Render a Jinja2 template."""
        try:
            template = self.env.get_template(template_name)
            return template.render(
                site_title=self.site_title,
                site_url=self.site_url,
                articles_slug=self.articles_slug,
                show_all_articles=self.context.show_all_articles,
                **context
            )
        except (TemplateNotFound, TemplateSyntaxError) as e:
            self.logger.error(f"Template error: {e}")
            return None

    def calculate_relative_path(self, current_output_dir):
        """Calculate relative path from current directory to root."""
        rel_path = os.path.relpath(self.output_dir, current_output_dir)
        # Ensure relative path ends with '/' for proper asset linking
        if rel_path == '.':
            return ''
        else:
            return rel_path + '/'

    def write_page(self, output_dir, html):
        """Write rendered HTML to <output_dir>/index.html."""
        if html is None:
            return False
        os.makedirs(output_dir, exist_ok=True)
        output_path = os.path.join(output_dir, 'index.html')
        try:
            with open(output_path, 'w', encoding='utf-8') as f:
                f.write(html)
            self.logger.debug(f"Generated HTML: {output_path}")
        except (IOError, OSError) as e:
            self.logger.error(f"Failed to write HTML file {output_path}: {e}")
            return False
        return True

    def build_item(self, item, output_dir, default_template, collections):
        """Render a single article or page."""
        layout = item.data.get('layout')
        template_name = f"{layout}.html" if isinstance(layout, str) and layout else default_template
        html = self.render_template(
            template_name,
            item=item,
            page=item.data,
            title=item.title,
            content=item.content,
            collections=collections,
            relative_path=self.calculate_relative_path(output_dir)
        )
        return self.write_page(output_dir, html)

    def build_articles(self, collections):
        """Build one page per visible article."""
        for article in collections['articles']:
            output_dir = os.path.join(self.output_dir, self.articles_slug, article.slug)
            if self.build_item(article, output_dir, 'article.html', collections):
                self.articles_generated += 1

    def build_pages(self, pages, collections):
        """Build standalone (non-article) pages."""
        for page in pages:
            output_dir = os.path.join(self.output_dir, page.slug)
            if self.build_item(page, output_dir, 'page.html', collections):
                self.pages_generated += 1

    def build_articles_index(self, collections):
        """Build the full article listing."""
        self.logger.info("Building articles index")
        output_dir = os.path.join(self.output_dir, self.articles_slug)
        html = self.render_template(
            'articles.html',
            page={'title': 'Articles'},
            articles=collections['articles'],
            collections=collections,
            relative_path=self.calculate_relative_path(output_dir)
        )
        return self.write_page(output_dir, html)

    def build_index_page(self, collections):
        """Build the home page with the latest articles."""
        self.logger.info("Building index page")
        html = self.render_template(
            'index.html',
            page={'title': 'Home'},
            latest_articles=collections['latest_articles'],
            collections=collections,
            relative_path=''
        )
        return self.write_page(self.output_dir, html)

    def build_404_page(self, collections):
        """Build 404 error page."""
        self.logger.info("Building 404 page")
        html = self.render_template(
            '404.html',
            page={'title': 'Not Found'},
            collections=collections,
            relative_path=''
        )
        if html is None:
            return False
        try:
            with open(os.path.join(self.output_dir, '404.html'), 'w', encoding='utf-8') as f:
                f.write(html)
        except (IOError, OSError) as e:
            self.logger.error(f"Failed to write 404 page: {e}")
            return False
        return True

    def build(self):
        """Main build process."""
        self.logger.info("Starting site build...")
        if self.context.show_all_articles:
            self.logger.info("Showing drafts and scheduled articles")
        self.articles_generated = 0
        self.pages_generated = 0

        items = self.loader.load_all()
        pages = [item for item in items if not item.has_tag(ARTICLE_TAG)]
        collections = self.collections(items)

        hidden = len(self.loader.get_filtered_by_tag(ARTICLE_TAG, items)) - len(collections['articles'])
        if hidden:
            self.logger.debug(f"Excluded {hidden} draft or scheduled article(s)")

        self.clean_output_dir(pages)
        self.copy_assets_to_output()
        if self.minify:
            self.minify_assets()

        self.build_articles(collections)
        self.build_pages(pages, collections)
        self.build_articles_index(collections)
        self.build_index_page(collections)
        self.build_404_page(collections)

        return collections
