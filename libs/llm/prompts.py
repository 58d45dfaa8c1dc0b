"""Prompt builders for the navigator's model calls."""

from typing import Optional

from libs.core.models import FetchedPage, MemoryFact, SearchResult, StatusIcon

SYSTEM_PROMPT = """You are a friendly assistant that can browse the web for the user. \
Keep replies short and conversational. When you act, say what you are doing in one line \
and let the action speak for itself.

ACTIONS - put these tags anywhere in your reply and they are executed for the user:

[ACTION:OPEN_URL:https://example.com]       open a page in a new tab
[ACTION:SEARCH:query words]                 web search, results shown in chat
[ACTION:OPEN_RESULT:N]                      open result N of the last search
[ACTION:IMAGE:https://.../pic.jpg|caption]  show an image (repeat for a slider)
[ACTION:EMBED:https://youtube.com/watch?v=ID|title]  embed a playable video
[ACTION:SCRAPE_IMAGES:query or url]         collect images from pages
[ACTION:SCREENSHOT:https://example.com]     take a screenshot of a page
[ACTION:OPEN_APP:app name]                  launch a desktop app
[ACTION:READ_URL:https://example.com]       read a page's content and links before answering
[ACTION:CLICK_IN_TAB:link text or number]   follow a link on the active tab's page
[ACTION:OPEN_TAB:https://example.com]       open a page in a tab without reading it
[ACTION:SWITCH_TAB:2]                       focus tab 2 (number, title or url part)
[ACTION:CLOSE_TAB:2]                        close a tab
[ACTION:LIST_TABS]                          list open tabs

Rules:
- Only use links you have actually seen. If you do not know a video's exact URL, open \
the site and READ_URL it instead of guessing.
- "search X and open the first one" -> [ACTION:SEARCH:X] [ACTION:OPEN_RESULT:1]
- "look up X" -> [ACTION:SEARCH:X]
- You may use several actions in one reply; they run in the order written.

STATUS - end every reply with exactly one mood tag: [STATUS:<icon>:<short text>]
Icons: {icons}

MEMORY - when the user tells you something worth remembering about them, add \
[MEMORY:key:value] (e.g. [MEMORY:name:Sam]). Later values for a key replace earlier ones."""

DEEP_READ_PROMPT = """The user asked: "{request}"

I opened {url} and read it. Page structure:

Title: {title}
{description}
Headings:
{headings}

Links (number. text -> url):
{links}

Content excerpt:
{content}

Continue the user's request using only the links listed above. If the answer is on this \
page, answer it. If you need to go deeper, use [ACTION:CLICK_IN_TAB:<link number or text>] \
or [ACTION:READ_URL:<url from the list>]. Do not invent URLs."""

SUMMARY_PROMPT = """I just opened {url}. Here is the page content:

Title: {title}

{content}

Summarize the key info from this page. Be concise but cover the important stuff."""

MAX_PROMPT_LINKS = 60
MAX_PROMPT_HEADINGS = 25


def build_system_prompt(memory_block: str = "") -> str:
    icons = ", ".join(icon.value for icon in StatusIcon)
    prompt = SYSTEM_PROMPT.format(icons=icons)
    if memory_block:
        prompt += "\n\n" + memory_block
    return prompt


def build_memory_context(facts: list[MemoryFact]) -> str:
    """Render stored user facts for the system prompt. Empty when there are none."""
    if not facts:
        return ""
    lines = [f"- {fact.key}: {fact.value}" for fact in facts]
    return "Things you remember about the user:\n" + "\n".join(lines)


def build_search_results_context(results: list[SearchResult]) -> Optional[str]:
    """Context message listing the last search results so OPEN_RESULT:N can refer to them."""
    if not results:
        return None
    listing = "\n".join(f"{i}. {r.title} - {r.url}" for i, r in enumerate(results, start=1))
    return (
        f"[Previous search results available]:\n{listing}\n\n"
        "I can open any of these by number if the user asks."
    )


def build_deep_read_prompt(page: FetchedPage, user_request: str, content_chars: int = 6000) -> str:
    headings = "\n".join(
        f"{'#' * max(1, min(h.level, 6))} {h.text}" for h in page.headings[:MAX_PROMPT_HEADINGS]
    )
    links = "\n".join(
        f"{i}. {link.text or '(no text)'} -> {link.url}"
        for i, link in enumerate(page.links[:MAX_PROMPT_LINKS], start=1)
    )
    description = f"Description: {page.meta.description}" if page.meta.description else ""
    return DEEP_READ_PROMPT.format(
        request=user_request,
        url=page.url,
        title=page.display_title,
        description=description,
        headings=headings or "(none)",
        links=links or "(none)",
        content=(page.content or "")[:content_chars] or "(no text content)",
    )


def build_summary_prompt(page: FetchedPage, content_chars: int = 6000) -> str:
    return SUMMARY_PROMPT.format(
        url=page.url,
        title=page.display_title,
        content=(page.content or "")[:content_chars],
    )
