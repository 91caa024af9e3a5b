import os

import pysam

from kinsim.lib.reference import ReferenceGenome, REFERENCE_FILE

example_data_dir = os.path.join(os.path.dirname(__file__), 'data')

# Four 120bp sequences
REF = [
  ('ref1', 'cgtacattac' 'gagcgactag' 'ctagctagta' 'cgtacgtaca'
           'atggcagcgt' 'attagcggca' 'aattgcgcat' 'tgcgtagcac'
           'gcgcgattca' 'ttatgcgcgc' 'atcgatcgat' 'cgatcgatca'),
  ('ref2', 'atggcagcgt' 'attagcggca' 'aattgcgcat' 'tgcgtagcac'
           'gcgcgattca' 'ttatgcgcgc' 'atcgatcgat' 'cgatcgatca'
           'cgtacattac' 'gagcgactag' 'ctagctagta' 'cgtacgtaca'),
  ('ref3', 'gcgcgattca' 'ttatgcgcgc' 'atcgatcgat' 'cgatcgatca'
           'cgtacattac' 'gagcgactag' 'ctagctagta' 'cgtacgtaca'
           'atggcagcgt' 'attagcggca' 'aattgcgcat' 'tgcgtagcac'),
  ('ref4', 'cgtacattac' 'gagcgactag' 'ctagctagta' 'cgtacgtaca'
           'gcgcgattca' 'ttatgcgcgc' 'atcgatcgat' 'cgatcgatca'
           'atggcagcgt' 'attagcggca' 'aattgcgcat' 'tgcgtagcac')
]

# ref1 ~ chrX, ref2 ~ chrY, ref3 ~ chrM
REFTXT = os.path.join(example_data_dir, 'reference.txt')


def make_reference(tmpdir, seqs=None, spec=None):
  """Write a FASTA (and optionally a reference.txt) into tmpdir and open it

  :param tmpdir: pytest tmpdir
  :param seqs: list of (name, sequence), default REF
  :param spec: path to a reference.txt to copy next to the FASTA
  :return: ReferenceGenome
  """
  fasta = str(tmpdir.join('ref.fa'))
  with open(fasta, 'w') as fp:
    for name, seq in (seqs or REF):
      fp.write('>{}\n{}\n'.format(name, seq))
  pysam.faidx(fasta)
  if spec is not None:
    with open(spec) as fp_in, open(str(tmpdir.join(REFERENCE_FILE)), 'w') as fp_out:
      fp_out.write(fp_in.read())
  return ReferenceGenome(fasta)


def write_vcf(fname, lines, samples=(), sexes=None, contigs=None):
  """Write a small VCF by hand

  :param fname:
  :param lines: record lines, tab separated
  :param samples: sample names
  :param sexes: dict sample -> MALE/FEMALE
  :param contigs: list of (name, length), default REF
  """
  header = ['##fileformat=VCFv4.2'] + \
           ['##contig=<ID={},length={}>'.format(n, l) for n, l in (contigs or [(n, len(s)) for n, s in REF])] + \
           ['##INFO=<ID=AF,Number=A,Type=Float,Description="Allele Frequency">'] + \
           (['##FORMAT=<ID=GT,Number=1,Type=String,Description="Genotype">'] if samples else []) + \
           ['##SAMPLE=<ID={},Sex={}>'.format(s, x) for s, x in sorted((sexes or {}).items())] + \
           ['\t'.join(['#CHROM', 'POS', 'ID', 'REF', 'ALT', 'QUAL', 'FILTER', 'INFO'] +
                      (['FORMAT'] + list(samples) if samples else []))]
  with open(fname, 'w') as fp:
    fp.write('\n'.join(header + list(lines)) + '\n')
  return fname


def data_records(fname):
  """Non header lines of a (possibly gzipped) VCF, split into columns"""
  return [str(rec).rstrip('\n').split('\t') for rec in pysam.VariantFile(fname)]
