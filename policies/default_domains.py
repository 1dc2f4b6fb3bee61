"""Built-in domain → context table.

Seeds the classifier.  Anything the user overrides or the content classifier
learns is stored separately and wins over these entries.
"""

from core.categories import Category

_C = Category

DOMAIN_CATEGORIES: dict[str, Category] = {
    # Work / productivity
    "docs.google.com": _C.WORK,
    "sheets.google.com": _C.WORK,
    "slides.google.com": _C.WORK,
    "drive.google.com": _C.WORK,
    "office.com": _C.WORK,
    "microsoft365.com": _C.WORK,
    "linkedin.com": _C.WORK,
    "slack.com": _C.WORK,
    "teams.microsoft.com": _C.WORK,
    "asana.com": _C.WORK,
    "trello.com": _C.WORK,
    "notion.so": _C.WORK,
    "monday.com": _C.WORK,
    "atlassian.com": _C.WORK,
    "jira.com": _C.WORK,
    "basecamp.com": _C.WORK,
    "zoom.us": _C.WORK,

    # Learning
    "coursera.org": _C.LEARNING,
    "udemy.com": _C.LEARNING,
    "edx.org": _C.LEARNING,
    "khanacademy.org": _C.LEARNING,
    "duolingo.com": _C.LEARNING,
    "canvas.instructure.com": _C.LEARNING,
    "blackboard.com": _C.LEARNING,
    "quizlet.com": _C.LEARNING,
    "chegg.com": _C.LEARNING,
    "brilliant.org": _C.LEARNING,
    "codecademy.com": _C.LEARNING,
    "freecodecamp.org": _C.LEARNING,
    "skillshare.com": _C.LEARNING,
    "pluralsight.com": _C.LEARNING,

    # Entertainment
    "netflix.com": _C.ENTERTAINMENT,
    "hulu.com": _C.ENTERTAINMENT,
    "disneyplus.com": _C.ENTERTAINMENT,
    "hbomax.com": _C.ENTERTAINMENT,
    "youtube.com": _C.ENTERTAINMENT,
    "twitch.tv": _C.ENTERTAINMENT,
    "spotify.com": _C.ENTERTAINMENT,
    "soundcloud.com": _C.ENTERTAINMENT,
    "steampowered.com": _C.ENTERTAINMENT,
    "epicgames.com": _C.ENTERTAINMENT,
    "ign.com": _C.ENTERTAINMENT,
    "imdb.com": _C.ENTERTAINMENT,
    "rottentomatoes.com": _C.ENTERTAINMENT,

    # News
    "cnn.com": _C.NEWS,
    "bbc.com": _C.NEWS,
    "nytimes.com": _C.NEWS,
    "washingtonpost.com": _C.NEWS,
    "reuters.com": _C.NEWS,
    "apnews.com": _C.NEWS,
    "foxnews.com": _C.NEWS,
    "nbcnews.com": _C.NEWS,
    "cbsnews.com": _C.NEWS,
    "politico.com": _C.NEWS,
    "economist.com": _C.NEWS,
    "wsj.com": _C.NEWS,
    "bloomberg.com": _C.NEWS,
    "theguardian.com": _C.NEWS,

    # Development
    "github.com": _C.DEVELOPMENT,
    "gitlab.com": _C.DEVELOPMENT,
    "bitbucket.org": _C.DEVELOPMENT,
    "stackoverflow.com": _C.DEVELOPMENT,
    "developer.mozilla.org": _C.DEVELOPMENT,
    "w3schools.com": _C.DEVELOPMENT,
    "codepen.io": _C.DEVELOPMENT,
    "replit.com": _C.DEVELOPMENT,
    "codesandbox.io": _C.DEVELOPMENT,
    "jsfiddle.net": _C.DEVELOPMENT,
    "npmjs.com": _C.DEVELOPMENT,
    "pypi.org": _C.DEVELOPMENT,
    "docker.com": _C.DEVELOPMENT,
    "kubernetes.io": _C.DEVELOPMENT,
    "digitalocean.com": _C.DEVELOPMENT,

    # Shopping
    "amazon.com": _C.SHOPPING,
    "ebay.com": _C.SHOPPING,
    "walmart.com": _C.SHOPPING,
    "target.com": _C.SHOPPING,
    "bestbuy.com": _C.SHOPPING,
    "etsy.com": _C.SHOPPING,
    "aliexpress.com": _C.SHOPPING,
    "wayfair.com": _C.SHOPPING,
    "costco.com": _C.SHOPPING,
    "newegg.com": _C.SHOPPING,
    "homedepot.com": _C.SHOPPING,
    "zappos.com": _C.SHOPPING,

    # Social
    "facebook.com": _C.SOCIAL,
    "twitter.com": _C.SOCIAL,
    "x.com": _C.SOCIAL,
    "instagram.com": _C.SOCIAL,
    "reddit.com": _C.SOCIAL,
    "pinterest.com": _C.SOCIAL,
    "tumblr.com": _C.SOCIAL,
    "tiktok.com": _C.SOCIAL,
    "snapchat.com": _C.SOCIAL,
    "discord.com": _C.SOCIAL,
    "messenger.com": _C.SOCIAL,
    "whatsapp.com": _C.SOCIAL,
    "medium.com": _C.SOCIAL,
    "quora.com": _C.SOCIAL,

    # Research
    "scholar.google.com": _C.RESEARCH,
    "pubmed.ncbi.nlm.nih.gov": _C.RESEARCH,
    "ncbi.nlm.nih.gov": _C.RESEARCH,
    "researchgate.net": _C.RESEARCH,
    "academia.edu": _C.RESEARCH,
    "jstor.org": _C.RESEARCH,
    "springer.com": _C.RESEARCH,
    "sciencedirect.com": _C.RESEARCH,
    "ieee.org": _C.RESEARCH,
    "arxiv.org": _C.RESEARCH,
    "nature.com": _C.RESEARCH,
    "scopus.com": _C.RESEARCH,
    "mendeley.com": _C.RESEARCH,
}
