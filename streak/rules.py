"""
Rule Synthesizer - derives the rule engine's full rule set from site config.

Every pass starts from "remove every id we could have created" (plus every
id the engine currently holds) and re-adds what the configuration dictates,
so running it twice with the same input leaves the same rule set.

Rule id contract:
    hash(site_id)  = 32-bit rolling hash, h = (h * 31 + ord(c)) mod 2**32
    block id       = 1 + hash mod RULE_ID_SPACE          -> [1, 1e9]
    redirect id    = block id + RULE_ID_SPACE            -> [1e9 + 1, 2e9]
Sites are allocated in id order; a block slot already taken by an earlier
site is probed linearly until free, so ids never repeat within one pass.

Without probing, ids are a function of the site id alone. A probed id also
depends on which other sites exist, so a rule left at a slot from an older
site set is only found through the engine's own listing. A site's un-probed
slot never needs separate removal: it is either the site's own id or the id
of the earlier site holding it. When listing fails, such a leftover survives
that one pass and is removed by the next pass whose listing succeeds.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Pattern, Tuple
from urllib.parse import urlsplit

from streak.allowances import is_allowed
from streak.schemas import BlockMode, EnforcementRule, RuleAction, RuleCondition, TrackedSite
from streak.store import ALLOWANCES, TRACKED_SITES, StreakRepository

logger = logging.getLogger("rules")

RULE_ID_SPACE = 1_000_000_000
BLOCK_KIND = 1
REDIRECT_KIND = 2

BLOCK_PRIORITY = 1
REDIRECT_PRIORITY = 100
MAIN_FRAME = "main_frame"


class RuleEngineError(Exception):
    pass


# === Rule ids ===

def site_rule_hash(site_id: str) -> int:
    h = 0
    for ch in site_id:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    return h


def rule_id_for_site(site_id: str, kind: int) -> int:
    """Un-probed rule id for a site. Use allocate_rule_ids() when sites may collide."""
    block_id = 1 + site_rule_hash(site_id) % RULE_ID_SPACE
    return block_id + (RULE_ID_SPACE if kind == REDIRECT_KIND else 0)


def allocate_rule_ids(site_ids: Iterable[str]) -> Dict[str, Tuple[int, int]]:
    """Map each site id to a unique (block_id, redirect_id) pair."""
    taken = set()
    allocated = {}
    for site_id in sorted(set(site_ids)):
        block_id = rule_id_for_site(site_id, BLOCK_KIND)
        while block_id in taken:
            block_id = block_id % RULE_ID_SPACE + 1
        taken.add(block_id)
        allocated[site_id] = (block_id, block_id + RULE_ID_SPACE)
    return allocated


# === Synthesis ===

@dataclass
class RuleUpdate:
    remove_ids: List[int] = field(default_factory=list)
    add_rules: List[EnforcementRule] = field(default_factory=list)


def url_filter_for_site(site: TrackedSite) -> Optional[str]:
    # arbitrary regex cannot be expressed as a URL filter
    if site.is_regex:
        return None
    pattern = (site.pattern or "").strip()
    return pattern or None


def is_http_url(value: str) -> bool:
    if not value or not re.match(r"^https?://", value, re.IGNORECASE):
        return False
    try:
        return bool(urlsplit(value).netloc)
    except ValueError:
        return False


def redirect_target(site: TrackedSite, fallback_url: str) -> str:
    target = (site.redirect_url or "").strip()
    return target if is_http_url(target) else fallback_url


def synthesize_rules(
    sites: List[TrackedSite],
    allowances: Dict[str, int],
    now_ms: int,
    fallback_redirect_url: str,
    existing_ids: Iterable[int] = (),
    block_priority: int = BLOCK_PRIORITY,
    redirect_priority: int = REDIRECT_PRIORITY,
) -> RuleUpdate:
    if redirect_priority <= block_priority:
        logger.warning(f"Redirect priority {redirect_priority} does not outrank block priority {block_priority}")
        redirect_priority = block_priority + 1

    ids = allocate_rule_ids(s.id for s in sites)
    remove_ids = set(existing_ids)
    add_rules = []

    for site in sites:
        block_id, redirect_id = ids[site.id]
        remove_ids.update((block_id, redirect_id))

        url_filter = url_filter_for_site(site)
        if not url_filter or site.block_mode == BlockMode.OFF:
            continue
        if is_allowed(allowances, site.id, now_ms):
            continue

        condition = RuleCondition(url_filter=url_filter, resource_types=[MAIN_FRAME])
        if site.block_mode == BlockMode.BLOCK:
            add_rules.append(EnforcementRule(
                id=block_id,
                priority=block_priority,
                action=RuleAction(type="block"),
                condition=condition,
            ))
        elif site.block_mode == BlockMode.REDIRECT:
            add_rules.append(EnforcementRule(
                id=redirect_id,
                priority=redirect_priority,
                action=RuleAction(type="redirect", redirect_url=redirect_target(site, fallback_redirect_url)),
                condition=condition,
            ))

    return RuleUpdate(remove_ids=sorted(remove_ids), add_rules=add_rules)


# === Rule engine ===

class RuleEngine(ABC):
    """Declarative rule engine evaluated by the host before a navigation proceeds."""

    @abstractmethod
    async def list_current_rules(self) -> List[EnforcementRule]:
        ...

    @abstractmethod
    async def update_rules(self, remove_ids: List[int], add_rules: List[EnforcementRule]) -> None:
        ...


def _compile_url_filter(url_filter: str) -> Pattern:
    """URL filter syntax: `*` wildcard, `^` separator, `|` anchors, `||` domain anchor."""
    f = url_filter
    prefix = suffix = ""
    if f.startswith("||"):
        prefix, f = r"^[a-z][a-z0-9+.\-]*://([^/?#]*\.)?", f[2:]
    elif f.startswith("|"):
        prefix, f = "^", f[1:]
    if f.endswith("|"):
        suffix, f = "$", f[:-1]

    parts = []
    for ch in f:
        if ch == "*":
            parts.append(".*")
        elif ch == "^":
            parts.append(r"(?:[^a-z0-9_.%\-]|$)")
        else:
            parts.append(re.escape(ch))
    return re.compile(prefix + "".join(parts) + suffix, re.IGNORECASE)


def url_filter_matches(url_filter: str, url: str) -> bool:
    return bool(_compile_url_filter(url_filter).search(url))


class InMemoryRuleEngine(RuleEngine):
    """Process-local rule engine with the same update semantics as a browser's dynamic rules."""

    def __init__(self):
        self.rules: Dict[int, EnforcementRule] = {}
        self.update_count = 0

    async def list_current_rules(self) -> List[EnforcementRule]:
        return [r.model_copy(deep=True) for r in sorted(self.rules.values(), key=lambda r: r.id)]

    async def update_rules(self, remove_ids: List[int], add_rules: List[EnforcementRule]) -> None:
        removed = set(remove_ids)
        remaining = {k: v for k, v in self.rules.items() if k not in removed}
        for rule in add_rules:
            if rule.id <= 0:
                raise RuleEngineError(f"Rule id must be positive, got {rule.id}")
            if rule.id in remaining:
                raise RuleEngineError(f"Duplicate rule id {rule.id}")
            if rule.action.type == "redirect" and not rule.action.redirect_url:
                raise RuleEngineError(f"Redirect rule {rule.id} has no target")
            remaining[rule.id] = rule.model_copy(deep=True)
        self.rules = remaining
        self.update_count += 1

    def evaluate(self, url: str, resource_type: str = MAIN_FRAME) -> Optional[EnforcementRule]:
        """Highest-priority rule that applies to the URL, redirect winning ties."""
        candidates = [
            r for r in self.rules.values()
            if resource_type in r.condition.resource_types and url_filter_matches(r.condition.url_filter, url)
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda r: (r.priority, r.action.type == "redirect", -r.id))


class RuleSynthesizer:
    """Reconciles the rule engine with the stored site config and allowances."""

    def __init__(
        self,
        repository: StreakRepository,
        engine: RuleEngine,
        fallback_redirect_url: str,
        block_priority: int = BLOCK_PRIORITY,
        redirect_priority: int = REDIRECT_PRIORITY,
    ):
        self.repository = repository
        self.engine = engine
        self.fallback_redirect_url = fallback_redirect_url
        self.block_priority = block_priority
        self.redirect_priority = redirect_priority

    async def rebuild(self, now_ms: int) -> Optional[RuleUpdate]:
        """Run one full synthesis pass. Engine failures are logged, never raised."""
        state = await self.repository.load(TRACKED_SITES, ALLOWANCES)

        try:
            existing_ids = [r.id for r in await self.engine.list_current_rules()]
        except Exception as e:
            logger.warning(f"Could not list current rules, removing known ids only: {e}")
            existing_ids = []

        update = synthesize_rules(
            state.sites,
            state.allowances,
            now_ms,
            self.fallback_redirect_url,
            existing_ids=existing_ids,
            block_priority=self.block_priority,
            redirect_priority=self.redirect_priority,
        )

        try:
            await self.engine.update_rules(update.remove_ids, update.add_rules)
        except Exception as e:
            logger.error(f"❌ Rule update failed, enforcement is stale until next rebuild: {e}")
            return None

        logger.info(f"Rules rebuilt: {len(update.add_rules)} active, {len(update.remove_ids)} ids cleared")
        return update
