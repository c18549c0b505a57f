"""System domain tags loaded at database initialization."""

from __future__ import annotations

SEED_DOMAINS: tuple[tuple[str, str], ...] = (
    # News
    ("coindesk.com", "news"),
    ("cointelegraph.com", "news"),
    ("decrypt.co", "news"),
    ("theblock.co", "news"),
    ("forbes.com", "news"),
    ("bloomberg.com", "news"),
    ("reuters.com", "news"),
    ("wsj.com", "news"),
    ("nytimes.com", "news"),
    ("theguardian.com", "news"),
    ("techcrunch.com", "news"),
    ("wired.com", "news"),
    ("arstechnica.com", "news"),
    ("beincrypto.com", "news"),
    ("cryptoslate.com", "news"),
    ("bitcoinmagazine.com", "news"),
    ("blockworks.co", "news"),
    ("thedefiant.io", "news"),
    ("cryptonews.com", "news"),
    ("dailyhodl.com", "news"),
    ("u.today", "news"),
    ("newsbtc.com", "news"),
    ("ambcrypto.com", "news"),
    ("cryptopotato.com", "news"),
    ("cnbc.com", "news"),
    ("bbc.com", "news"),
    ("apnews.com", "news"),
    ("cnn.com", "news"),
    ("theverge.com", "news"),
    ("engadget.com", "news"),
    ("zdnet.com", "news"),
    ("venturebeat.com", "news"),
    # Exchanges / market data
    ("binance.com", "exchange"),
    ("coinbase.com", "exchange"),
    ("kraken.com", "exchange"),
    ("coinmarketcap.com", "exchange"),
    ("coingecko.com", "exchange"),
    ("cryptocompare.com", "exchange"),
    ("messari.io", "exchange"),
    ("dextools.io", "exchange"),
    ("tradingview.com", "exchange"),
    ("defillama.com", "exchange"),
    ("dune.com", "exchange"),
    ("etherscan.io", "exchange"),
    ("cardanoscan.io", "exchange"),
    ("blockchair.com", "exchange"),
    # Video
    ("youtube.com", "video"),
    ("youtu.be", "video"),
    ("vimeo.com", "video"),
    ("twitch.tv", "video"),
    # Social
    ("twitter.com", "social"),
    ("x.com", "social"),
    ("reddit.com", "social"),
    ("linkedin.com", "social"),
    ("medium.com", "social"),
    ("discord.com", "social"),
    ("telegram.org", "social"),
    ("t.me", "social"),
    # Developer
    ("github.com", "developer"),
    ("stackoverflow.com", "developer"),
    ("docs.soliditylang.org", "developer"),
    ("developer.mozilla.org", "developer"),
    ("npmjs.com", "developer"),
    # Reference
    ("wikipedia.org", "reference"),
    ("investopedia.com", "reference"),
    ("docs.google.com", "reference"),
    ("arxiv.org", "reference"),
    # Aggregator
    ("feedly.com", "aggregator"),
    ("flipboard.com", "aggregator"),
    ("news.ycombinator.com", "aggregator"),
    # Blog
    ("substack.com", "blog"),
    ("mirror.xyz", "blog"),
    ("hashnode.dev", "blog"),
    ("dev.to", "blog"),
)
