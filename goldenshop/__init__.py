"""GoldenShop storefront backend."""
