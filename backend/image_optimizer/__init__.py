"""Image derivation pipeline for blog posts: preset variants, LQIP placeholders, remote sources."""
