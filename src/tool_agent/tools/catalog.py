"""
The default tool catalog offered to the model.
"""

from .base import ToolDefinition, ToolParameter

IMAGE_STYLES = (
    "realistic",
    "anime",
    "digital-art",
    "oil-painting",
    "watercolor",
    "sketch",
    "3d-render",
)

MEMORY_CATEGORIES = ("preference", "personal", "work", "hobby", "other")


DEFAULT_TOOLS: tuple[ToolDefinition, ...] = (
    ToolDefinition(
        name="web_search",
        description=(
            "Search the web for information. Use this when you need current information, "
            "facts, or data that may not be in your training data."
        ),
        parameters=(
            ToolParameter("query", "string", "The search query"),
            ToolParameter(
                "max_results", "number",
                "Maximum number of results to return (default: 5)",
                required=False,
            ),
        ),
    ),
    ToolDefinition(
        name="fetch_url",
        description=(
            "Fetch the content of a webpage. Use this to read documentation, articles, "
            "or web pages. Only a fixed set of trusted domains can be fetched."
        ),
        parameters=(
            ToolParameter("url", "string", "The URL to fetch"),
        ),
    ),
    ToolDefinition(
        name="search_arxiv",
        description=(
            "Search for academic papers on arXiv. Use for scientific or technical "
            "research queries."
        ),
        parameters=(
            ToolParameter("query", "string", "Search query for papers"),
            ToolParameter("max_results", "number", "Maximum results (default: 5)", required=False),
        ),
    ),
    ToolDefinition(
        name="get_time",
        description="Get the current time in a specific timezone.",
        parameters=(
            ToolParameter(
                "timezone", "string",
                "IANA timezone name (e.g., 'America/New_York', 'Europe/London', 'Asia/Tokyo')",
                required=False,
            ),
        ),
    ),
    ToolDefinition(
        name="calculate",
        description=(
            "Perform mathematical calculations. Supports basic arithmetic, "
            "trigonometry, logarithms, etc."
        ),
        parameters=(
            ToolParameter(
                "expression", "string",
                "Mathematical expression to evaluate (e.g., '2 + 2 * 3', 'sin(45)', 'log(100)')",
            ),
        ),
    ),
    ToolDefinition(
        name="wikipedia_summary",
        description="Get a summary of a Wikipedia article on a topic.",
        parameters=(
            ToolParameter("topic", "string", "The topic to look up on Wikipedia"),
        ),
    ),
    ToolDefinition(
        name="think",
        description=(
            "Use this tool to think through complex problems step by step before providing "
            "a final answer. Good for reasoning, planning, and breaking down complex tasks."
        ),
        parameters=(
            ToolParameter("thought", "string", "Your current thinking or reasoning step"),
        ),
    ),
    ToolDefinition(
        name="generate_image",
        description=(
            "Generate an image from a text description using AI. Use this when the user "
            "asks for image creation, artwork, or visual content."
        ),
        parameters=(
            ToolParameter(
                "prompt", "string",
                "Detailed description of the image to generate. Be specific about style, "
                "subject, colors, and composition.",
            ),
            ToolParameter(
                "negative_prompt", "string",
                "Things to avoid in the image (e.g., 'blurry, low quality, distorted')",
                required=False,
            ),
            ToolParameter(
                "style", "string", "Art style preset to apply",
                required=False, enum=IMAGE_STYLES,
            ),
        ),
    ),
    ToolDefinition(
        name="remember",
        description=(
            "Store important information about the user for future conversations. Use this "
            "when the user shares preferences, facts about themselves, or asks you to "
            "remember something."
        ),
        parameters=(
            ToolParameter("fact", "string", "The information to remember about the user"),
            ToolParameter(
                "category", "string", "Category of the information",
                required=False, enum=MEMORY_CATEGORIES,
            ),
        ),
    ),
    ToolDefinition(
        name="recall",
        description=(
            "Search your memory for information about the user. Use this when you need to "
            "remember something the user told you previously."
        ),
        parameters=(
            ToolParameter("query", "string", "What to search for in memory"),
        ),
    ),
)
