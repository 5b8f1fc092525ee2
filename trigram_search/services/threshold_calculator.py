class ThresholdCalculator:
    """
    Picks the pg_trgm word-similarity cutoff for a normalized query.
    Short single words must match almost exactly to avoid noise; longer
    queries tolerate more typos and omissions.
    """

    @staticmethod
    def calculate(query: str) -> float:
        length = len(query)
        word_count = len(query.split())

        if word_count <= 1:
            if length < 5:
                return 0.8
            if length == 5:
                return 0.7
            if length < 10:
                return 0.5

        if length < 30:
            return 0.4

        return 0.3
