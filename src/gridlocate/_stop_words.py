"""English function words dropped before counting document words."""

STOP_WORDS: frozenset[str] = frozenset({
    # Articles, conjunctions, prepositions
    "a", "an", "the", "and", "or", "but", "nor", "if", "because", "while",
    "of", "in", "on", "at", "to", "for", "from", "by", "with", "about",
    "into", "onto", "upon", "via", "per", "than", "as", "between",
    "among", "through", "during", "before", "after", "since", "until",
    "within", "without", "against", "across", "along", "around",
    # Pronouns and determiners
    "i", "me", "my", "we", "us", "our", "you", "your", "he", "him", "his",
    "she", "her", "it", "its", "they", "them", "their", "this", "that",
    "these", "those", "who", "whom", "whose", "which", "what", "there",
    "each", "every", "all", "any", "some", "such", "no", "not", "both",
    "other", "another", "same", "own",
    # Auxiliaries and modals
    "am", "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did", "done",
    "will", "would", "shall", "should", "can", "could", "may", "might",
    "must",
    # Adverbs
    "also", "only", "very", "so", "too", "then", "now", "here", "when",
    "where", "why", "how", "just", "still", "even", "more", "most",
    "much", "many", "few", "less", "least",
    # Contraction fragments left by the word regex
    "s", "t", "d", "ll", "m", "re", "ve",
    # Markup residue common in web and encyclopedia text
    "http", "https", "www", "com", "org", "html", "ref", "nbsp", "amp",
    "rt",
})
