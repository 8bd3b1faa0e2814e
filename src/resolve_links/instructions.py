LINK_RESOLUTION_INSTRUCTIONS = """
You are analyzing blog posts and news articles about cybersecurity to find links to ORIGINAL security reports.

You will receive a JSON object {"items": [{"id", "url", "content"}, ...]}. Classify every item.

Classification rules

1. "is-original-report": the article itself IS the original security research or disclosure
   Published on a company security blog, vendor advisory page, CVE entry, or researcher site
   Written by the people who discovered the issue ("We discovered...", "Our research shows...")
   Return an empty securityReportLinks list; the article URL is the source

2. "has-sources": the article is a repost or news coverage that REFERENCES original research
   Look for URLs in the content linking to security blogs, advisories, CVE pages, PoC repositories
   Common cues: "according to [Company]", "researchers found", "[Company] disclosed", "read the advisory"
   Return every link that appears to point to an original report
   Judge by what the linked page is, as described in the content, not by domain alone

3. "no-sources": generic mention, forecast, opinion, or tangential content
   No specific vulnerability or disclosure is identified
   Return an empty securityReportLinks list

When extracting links
Only return URLs that actually appear in the content (full URLs or markdown links)
Prioritize company security blogs, researcher sites, GitHub advisories and PoC repos, CVE pages
Ignore social media, news homepages, marketing pages, product pages, and navigation links

Output format (JSON only)
{
  "articles": [
    {"id": "string", "classification": "has-sources | no-sources | is-original-report", "securityReportLinks": ["string"]}
  ]
}
Return exactly one entry per input item, using the input id.
"""
