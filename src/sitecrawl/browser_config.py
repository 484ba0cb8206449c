"""
Browser identity settings for Playwright-based crawling.

User agent pools, round-robin rotation, stealth launch arguments and the
fingerprint evasion script injected into every new browser context.
"""
import random
from typing import Dict, List, Literal, Optional


# User agent pool for rotation
USER_AGENTS = {
    "desktop": [
        # Chrome on Windows
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
        # Chrome on Mac
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        # Firefox on Windows
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
        # Firefox on Mac
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:121.0) Gecko/20100101 Firefox/121.0",
        # Safari on Mac
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2 Safari/605.1.15",
    ],
    "mobile": [
        "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1",
        "Mozilla/5.0 (Linux; Android 14; Pixel 7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Mobile Safari/537.36",
    ],
}

# Realistic viewport sizes for desktop
DESKTOP_VIEWPORTS = [
    {"width": 1920, "height": 1080},
    {"width": 1366, "height": 768},
    {"width": 1536, "height": 864},
    {"width": 1440, "height": 900},
]

STEALTH_LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-features=IsolateOrigins,site-per-process",
    "--disable-site-isolation-trials",
    "--no-first-run",
    "--no-default-browser-check",
    "--disable-default-apps",
    "--disable-popup-blocking",
    "--disable-translate",
    "--disable-background-timer-throttling",
    "--disable-renderer-backgrounding",
    "--disable-backgrounding-occluded-windows",
]

# Injected before any page script runs
FINGERPRINT_EVASION_SCRIPT = """
    // Mask webdriver property
    Object.defineProperty(navigator, 'webdriver', {
        get: () => undefined
    });

    // Mask languages
    Object.defineProperty(navigator, 'languages', {
        get: () => ['en-US', 'en']
    });

    // Add realistic plugins
    Object.defineProperty(navigator, 'plugins', {
        get: () => [
            { name: 'Chrome PDF Plugin', filename: 'internal-pdf-viewer' },
            { name: 'Chrome PDF Viewer', filename: 'internal-pdf-viewer' },
            { name: 'Native Client', filename: 'internal-nacl-plugin' }
        ]
    });

    // Mask permissions query
    const originalQuery = window.navigator.permissions.query;
    window.navigator.permissions.query = (parameters) => (
        parameters.name === 'notifications' ?
            Promise.resolve({ state: Notification.permission }) :
            originalQuery(parameters)
    );

    // Add chrome runtime object
    window.chrome = {
        runtime: {}
    };

    if (navigator.connection) {
        Object.defineProperty(navigator.connection, 'rtt', {
            get: () => 50
        });
    }
"""


def get_all_user_agents() -> List[str]:
    """Get every user agent in the pool, desktop first."""
    return USER_AGENTS["desktop"] + USER_AGENTS["mobile"]


def get_random_user_agent(kind: Literal["desktop", "mobile"] = "desktop") -> str:
    """Get a random user agent from the pool."""
    return random.choice(USER_AGENTS[kind])


def get_common_headers(user_agent: Optional[str] = None) -> Dict[str, str]:
    """Headers a real browser sends on a top-level navigation."""
    return {
        "User-Agent": user_agent or USER_AGENTS["desktop"][0],
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
        "Upgrade-Insecure-Requests": "1",
    }


class UserAgentRotator:
    """
    Round-robin user agent selection shared by all workers of a job.

    When rotation is disabled every call returns the fixed agent.
    """

    def __init__(
        self,
        rotate: bool = True,
        fixed_user_agent: Optional[str] = None,
        agents: Optional[List[str]] = None,
    ):
        self.rotate = rotate
        self.fixed_user_agent = fixed_user_agent or USER_AGENTS["desktop"][0]
        self._agents = list(agents) if agents else list(USER_AGENTS["desktop"])
        self._index = 0

    def next(self) -> str:
        """Get the next user agent."""
        if not self.rotate:
            return self.fixed_user_agent
        agent = self._agents[self._index % len(self._agents)]
        self._index += 1
        return agent
