"""Technology stack detection from crawl fingerprints.

Detects CMS, ecommerce platforms, frameworks, CDNs, analytics and more from
the headers, cookies, script URLs, HTML and meta tags accumulated during a
crawl. Every rule is a plain record; one matcher evaluates them all.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Literal, Optional, Tuple

from sitecrawl.models import TechDetectionContext, TechStackItem

logger = logging.getLogger(__name__)

PatternKind = Literal["header", "cookie", "meta", "script", "html"]

# Evidence strength per signal kind
CONFIDENCE_BY_KIND: Dict[str, int] = {
    "header": 100,
    "cookie": 100,
    "meta": 100,
    "script": 75,
    "html": 50,
}

CATEGORY_LABELS = {
    "cms": "Content Management",
    "ecommerce": "E-commerce",
    "javascript-framework": "JavaScript Frameworks",
    "css-framework": "CSS Frameworks",
    "analytics": "Analytics",
    "marketing": "Marketing",
    "chat": "Live Chat",
    "cdn": "CDN",
    "hosting": "Hosting",
    "security": "Security",
    "server": "Web Servers",
    "programming-language": "Programming Languages",
    "payment": "Payments",
    "font": "Fonts",
    "other": "Other",
}


@dataclass(frozen=True)
class PatternRule:
    """One signal to look for.

    ``key`` names the header, cookie or meta tag for those kinds and is
    ignored for script and html. The first regex group, if any, is taken as
    the version.
    """
    kind: PatternKind
    pattern: str
    key: Optional[str] = None


@dataclass(frozen=True)
class TechRule:
    """A technology and the signals that reveal it."""
    name: str
    category: str
    patterns: Tuple[PatternRule, ...] = field(default_factory=tuple)


def _rule(name: str, category: str, *patterns: PatternRule) -> TechRule:
    return TechRule(name=name, category=category, patterns=tuple(patterns))


TECH_RULES: List[TechRule] = [
    # CMS
    _rule("WordPress", "cms",
          PatternRule("meta", r"WordPress\s*([\d.]+)?", key="generator"),
          PatternRule("script", r"/wp-(?:content|includes)/"),
          PatternRule("html", r"/wp-content/"),
          PatternRule("cookie", r"^wordpress_|^wp-settings")),
    _rule("Drupal", "cms",
          PatternRule("meta", r"Drupal\s*([\d.]+)?", key="generator"),
          PatternRule("header", r"Drupal", key="x-generator"),
          PatternRule("script", r"/sites/all/|/misc/drupal\.js")),
    _rule("Joomla", "cms",
          PatternRule("meta", r"Joomla!?\s*([\d.]+)?", key="generator")),
    _rule("Wix", "cms",
          PatternRule("header", r".", key="x-wix-request-id"),
          PatternRule("script", r"static\.parastorage\.com")),
    _rule("Squarespace", "cms",
          PatternRule("script", r"static1?\.squarespace\.com"),
          PatternRule("html", r"Static\.SQUARESPACE_CONTEXT")),
    _rule("Webflow", "cms",
          PatternRule("meta", r"Webflow", key="generator"),
          PatternRule("html", r"data-wf-page=")),
    _rule("Ghost", "cms",
          PatternRule("meta", r"Ghost\s*([\d.]+)?", key="generator")),

    # Ecommerce
    _rule("Shopify", "ecommerce",
          PatternRule("header", r".", key="x-shopid"),
          PatternRule("cookie", r"^_shopify_"),
          PatternRule("script", r"cdn\.shopify\.com")),
    _rule("WooCommerce", "ecommerce",
          PatternRule("script", r"/woocommerce/"),
          PatternRule("cookie", r"^woocommerce_")),
    _rule("Magento", "ecommerce",
          PatternRule("cookie", r"^(?:frontend|mage-cache-storage)$"),
          PatternRule("script", r"/static/version\d+/frontend/")),
    _rule("BigCommerce", "ecommerce",
          PatternRule("script", r"cdn\d*\.bigcommerce\.com")),

    # JavaScript frameworks
    _rule("Next.js", "javascript-framework",
          PatternRule("header", r"Next\.js\s*([\d.]+)?", key="x-powered-by"),
          PatternRule("script", r"/_next/static/"),
          PatternRule("html", r'id="__NEXT_DATA__"')),
    _rule("Nuxt.js", "javascript-framework",
          PatternRule("script", r"/_nuxt/"),
          PatternRule("html", r"window\.__NUXT__")),
    _rule("React", "javascript-framework",
          PatternRule("script", r"react(?:-dom)?(?:\.production)?(?:\.min)?\.js"),
          PatternRule("html", r"data-reactroot")),
    _rule("Vue.js", "javascript-framework",
          PatternRule("script", r"vue(?:\.runtime)?(?:\.global)?(?:\.prod)?(?:\.min)?\.js"),
          PatternRule("html", r"data-v-[0-9a-f]{8}")),
    _rule("Angular", "javascript-framework",
          PatternRule("html", r'ng-version="([\d.]+)"')),
    _rule("Gatsby", "javascript-framework",
          PatternRule("meta", r"Gatsby\s*([\d.]+)?", key="generator"),
          PatternRule("html", r'id="___gatsby"')),
    _rule("jQuery", "javascript-framework",
          PatternRule("script", r"jquery[.-]?([\d.]+)?(?:\.min)?\.js")),

    # CSS frameworks
    _rule("Bootstrap", "css-framework",
          PatternRule("script", r"bootstrap(?:\.bundle)?(?:\.min)?\.js"),
          PatternRule("html", r"bootstrap(?:\.min)?\.css")),
    _rule("Tailwind CSS", "css-framework",
          PatternRule("html", r"tailwind(?:\.min)?\.css|cdn\.tailwindcss\.com")),

    # Analytics and marketing
    _rule("Google Analytics", "analytics",
          PatternRule("script", r"google-analytics\.com/(?:ga|analytics)\.js|googletagmanager\.com/gtag/js"),
          PatternRule("cookie", r"^_ga$|^_gid$")),
    _rule("Google Tag Manager", "analytics",
          PatternRule("script", r"googletagmanager\.com/gtm\.js"),
          PatternRule("html", r"googletagmanager\.com/ns\.html")),
    _rule("Hotjar", "analytics",
          PatternRule("script", r"static\.hotjar\.com"),
          PatternRule("cookie", r"^_hj")),
    _rule("Segment", "analytics",
          PatternRule("script", r"cdn\.segment\.com")),
    _rule("HubSpot", "marketing",
          PatternRule("script", r"js\.hs-scripts\.com|js\.hsforms\.net"),
          PatternRule("cookie", r"^hubspotutk$")),
    _rule("Facebook Pixel", "marketing",
          PatternRule("script", r"connect\.facebook\.net/.+/fbevents\.js")),

    # Chat
    _rule("Intercom", "chat",
          PatternRule("script", r"widget\.intercom\.io|js\.intercomcdn\.com")),
    _rule("Drift", "chat",
          PatternRule("script", r"js\.driftt\.com")),
    _rule("Zendesk Chat", "chat",
          PatternRule("script", r"static\.zdassets\.com")),

    # CDN, hosting, security
    _rule("Cloudflare", "cdn",
          PatternRule("header", r"cloudflare", key="server"),
          PatternRule("header", r".", key="cf-ray"),
          PatternRule("cookie", r"^__cf_bm$|^__cfduid$")),
    _rule("Amazon CloudFront", "cdn",
          PatternRule("header", r".", key="x-amz-cf-id")),
    _rule("Fastly", "cdn",
          PatternRule("header", r".", key="x-fastly-request-id"),
          PatternRule("header", r"fastly", key="via")),
    _rule("Akamai", "cdn",
          PatternRule("header", r"AkamaiGHost", key="server")),
    _rule("Vercel", "hosting",
          PatternRule("header", r"Vercel", key="server"),
          PatternRule("header", r".", key="x-vercel-id")),
    _rule("Netlify", "hosting",
          PatternRule("header", r"Netlify", key="server"),
          PatternRule("header", r".", key="x-nf-request-id")),
    _rule("Google reCAPTCHA", "security",
          PatternRule("script", r"google\.com/recaptcha/|recaptcha/api\.js")),

    # Servers and languages
    _rule("Nginx", "server",
          PatternRule("header", r"nginx(?:/([\d.]+))?", key="server")),
    _rule("Apache", "server",
          PatternRule("header", r"Apache(?:/([\d.]+))?", key="server")),
    _rule("Microsoft IIS", "server",
          PatternRule("header", r"Microsoft-IIS(?:/([\d.]+))?", key="server")),
    _rule("PHP", "programming-language",
          PatternRule("header", r"PHP(?:/([\d.]+))?", key="x-powered-by"),
          PatternRule("cookie", r"^PHPSESSID$")),
    _rule("ASP.NET", "programming-language",
          PatternRule("header", r"ASP\.NET", key="x-powered-by"),
          PatternRule("cookie", r"^ASP\.NET_SessionId$")),
    _rule("Express", "server",
          PatternRule("header", r"Express", key="x-powered-by")),

    # Payments and fonts
    _rule("Stripe", "payment",
          PatternRule("script", r"js\.stripe\.com")),
    _rule("PayPal", "payment",
          PatternRule("script", r"paypal\.com/sdk/js|paypalobjects\.com")),
    _rule("Google Fonts", "font",
          PatternRule("html", r"fonts\.googleapis\.com")),
    _rule("Font Awesome", "font",
          PatternRule("html", r"font-?awesome"),
          PatternRule("script", r"kit\.fontawesome\.com")),
]


def _match_keyed(values: Dict[str, str], rule: PatternRule) -> Iterable[Tuple[str, str]]:
    value = values.get((rule.key or "").lower())
    if value is not None:
        yield value, f"{rule.key}: {value}"


def _match_cookie(context: TechDetectionContext, rule: PatternRule) -> Iterable[Tuple[str, str]]:
    for name in context.cookies:
        yield name, f"cookie {name}"


def _match_script(context: TechDetectionContext, rule: PatternRule) -> Iterable[Tuple[str, str]]:
    for src in context.scripts:
        yield src, f"script {src}"


def _match_html(context: TechDetectionContext, rule: PatternRule) -> Iterable[Tuple[str, str]]:
    if context.html:
        yield context.html, "html"


# Candidate (text, evidence) pairs per signal kind
_SIGNALS: Dict[str, Callable[[TechDetectionContext, PatternRule], Iterable[Tuple[str, str]]]] = {
    "header": lambda ctx, rule: _match_keyed(ctx.headers, rule),
    "meta": lambda ctx, rule: _match_keyed(ctx.meta, rule),
    "cookie": _match_cookie,
    "script": _match_script,
    "html": _match_html,
}


def match_pattern(context: TechDetectionContext, rule: PatternRule) -> Optional[Tuple[Optional[str], str]]:
    """Evaluate one pattern against the context.

    Args:
        context: Accumulated fingerprint signals
        rule: Pattern to evaluate

    Returns:
        (version, evidence) on a match, None otherwise
    """
    regex = re.compile(rule.pattern, re.IGNORECASE)
    for text, evidence in _SIGNALS[rule.kind](context, rule):
        match = regex.search(text)
        if match:
            version = match.group(1) if match.groups() and match.group(1) else None
            return version, evidence[:200]
    return None


def detect_tech_stack(
    context: TechDetectionContext,
    rules: Optional[List[TechRule]] = None,
) -> List[TechStackItem]:
    """
    Detect technologies from accumulated crawl signals.

    Args:
        context: Headers, cookies, scripts, HTML and meta from the crawl
        rules: Rule table, defaults to TECH_RULES

    Returns:
        Detected technologies, highest confidence first, then by name
    """
    context = TechDetectionContext(
        headers={k.lower(): v for k, v in context.headers.items()},
        cookies=context.cookies,
        scripts=context.scripts,
        html=context.html,
        meta={k.lower(): v for k, v in context.meta.items()},
    )

    detected: List[TechStackItem] = []
    for tech in rules if rules is not None else TECH_RULES:
        best: Optional[TechStackItem] = None
        version: Optional[str] = None

        for pattern in tech.patterns:
            found = match_pattern(context, pattern)
            if found is None:
                continue
            pattern_version, evidence = found
            version = version or pattern_version
            confidence = CONFIDENCE_BY_KIND[pattern.kind]
            if best is None or confidence > best.confidence:
                best = TechStackItem(
                    category=tech.category,
                    name=tech.name,
                    confidence=confidence,
                    detected_by=pattern.kind,
                    evidence=evidence,
                )

        if best is not None:
            best.version = version
            detected.append(best)

    detected.sort(key=lambda item: (-item.confidence, item.name))
    logger.debug(f"Detected {len(detected)} technologies")
    return detected


def group_by_category(items: Iterable[TechStackItem]) -> Dict[str, List[TechStackItem]]:
    """Group detected technologies by category, preserving order."""
    grouped: Dict[str, List[TechStackItem]] = {}
    for item in items:
        grouped.setdefault(item.category, []).append(item)
    return grouped


def get_category_label(category: str) -> str:
    """Human-readable label for a category."""
    return CATEGORY_LABELS.get(category, category.replace("-", " ").title())
