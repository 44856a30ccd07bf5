"""Common English stopwords excluded from sentence and keyword scoring."""

STOPWORDS: frozenset[str] = frozenset(
    {
        "the", "is", "in", "and", "a", "an", "of", "to", "it", "with",
        "for", "on", "that", "this", "as", "by", "at", "from", "or", "but",
        "not", "be", "are", "was", "were", "will", "has", "have", "had", "if",
        "then", "so", "such", "can", "all", "any", "do", "does", "did", "no",
        "yes", "you", "we", "they", "he", "she", "him", "her", "them", "our",
        "their", "its", "my", "your", "me", "i",
    }
)
